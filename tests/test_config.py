import pytest

from stheno.config import ConfigError, load_config, production_from_env


def test_defaults_without_config_file(tmp_path):
    config = load_config(tmp_path)
    assert config.project_root == tmp_path
    assert config.output_dir == tmp_path / "_site"
    assert config.production is False
    assert config.port == 3000
    assert config.ws_port == 3001
    assert config.sprites.source_dir == tmp_path / "_svg"
    assert config.sprites.include == tmp_path / "_includes" / "svg-sprite.html"
    assert config.site.command == ("jekyll", "build")
    assert config.site.production_env == {"JEKYLL_ENV": "production"}
    assert config.js.vendor == ()
    assert config.js.minifier == "rjsmin"
    assert config.deploy.branch == "gh-pages"
    assert config.serve.debounce == pytest.approx(0.1)


def test_yaml_overrides_are_merged(tmp_path):
    (tmp_path / "stheno.yaml").write_text(
        "output_dir: public\n"
        "port: 4000\n"
        "site:\n"
        "  command: bundle exec jekyll build\n"
        "js:\n"
        "  vendor: [js/vendor/jquery.js, js/vendor/foundation.js]\n"
        "  app: [js/app.js]\n"
        "deploy:\n"
        "  branch: master\n",
        encoding="utf-8",
    )
    config = load_config(tmp_path, production=True)
    assert config.output_dir == tmp_path / "public"
    assert config.port == 4000
    assert config.ws_port == 4001
    assert config.production is True
    assert config.site.command == ("bundle", "exec", "jekyll", "build")
    assert config.site.args == ()
    assert config.js.vendor == ("js/vendor/jquery.js", "js/vendor/foundation.js")
    assert config.js.app == ("js/app.js",)
    assert config.js.output == "js/app.min.js"
    assert config.deploy.branch == "master"
    assert config.deploy.remote == "origin"


def test_non_mapping_yaml_is_ignored(tmp_path):
    (tmp_path / "stheno.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    assert load_config(tmp_path).port == 3000


@pytest.mark.parametrize(
    "body, message",
    [
        ("port: nope\n", "port must be an integer"),
        ("js:\n  vendor: 3\n", "js.vendor must be a list"),
        ("js:\n  minifier: uglify\n", "js.minifier"),
        ("serve:\n  debounce: -1\n", "must not be negative"),
        ("site:\n  command: []\n", "site.command must not be empty"),
        ("sprites: yes\n", "sprites must be a mapping"),
        ("port: [\n", "stheno.yaml"),
        ("- port\n- 3000\n", "top level must be a mapping"),
    ],
)
def test_invalid_values_raise(tmp_path, body, message):
    (tmp_path / "stheno.yaml").write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path)


def test_profile_and_port_overrides(tmp_path):
    config = load_config(tmp_path)
    prod = config.with_profile(True)
    assert prod.production is True
    assert config.production is False

    assert config.with_ports() is config
    moved = config.with_ports(port=5050)
    assert (moved.port, moved.ws_port) == (5050, 5051)
    explicit = config.with_ports(port=5050, ws_port=6000)
    assert explicit.ws_port == 6000
    ws_only = config.with_ports(ws_port=7000)
    assert (ws_only.port, ws_only.ws_port) == (3000, 7000)


def test_production_from_env():
    assert production_from_env({"JEKYLL_ENV": "production"}) is True
    assert production_from_env({"JEKYLL_ENV": " Production "}) is True
    assert production_from_env({"JEKYLL_ENV": "development"}) is False
    assert production_from_env({}) is False


def test_deploy_identity_is_optional(tmp_path):
    config = load_config(tmp_path)
    assert (config.deploy.name, config.deploy.email) == (None, None)
    (tmp_path / "stheno.yaml").write_text(
        "deploy:\n  name: Deploy Bot\n  email: bot@example.com\n", encoding="utf-8"
    )
    config = load_config(tmp_path)
    assert (config.deploy.name, config.deploy.email) == ("Deploy Bot", "bot@example.com")
