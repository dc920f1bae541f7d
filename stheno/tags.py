"""Custom template tags for Jinja2.

Tags are plain functions registered by name. ``TagExtension`` exposes every
registered tag as a Jinja statement, so ``{% custom_tag %}`` in a template
renders whatever the bound function returns.

Key objects:
- TagRegistry: Name to renderer mapping.
- register_tag: Registration on the default registry.
- TagExtension: Jinja2 extension turning registered tags into statements.
- create_environment: Jinja2 environment with the extension installed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from jinja2 import BaseLoader, Environment, nodes, select_autoescape
from jinja2.ext import Extension
from markupsafe import Markup

from .protocols import RenderableTag

CUSTOM_TAG_MARKUP = """<div>
      <h1 style="color:blue;text-decoration:underline">
        Hello Custom Tag!
      </h1>
    </div>"""


@dataclass(frozen=True)
class TagInvocation:
    """Parsed invocation of a tag.

    Attributes:
        name: Tag name as written in the template.
        arguments: Raw tokens following the tag name, space separated.
        lineno: Template line of the invocation.
    """

    name: str
    arguments: str = ""
    lineno: int = 0


class TagRegistry:
    """Registry binding tag names to render functions."""

    def __init__(self):
        self._renderers: dict[str, RenderableTag] = {}

    def register(self, name: str, render_fn: RenderableTag) -> None:
        """Bind ``name`` to ``render_fn``, replacing any earlier binding.

        Raises:
            ValueError: If the name is empty or the renderer is not callable.
        """
        if not name or not name.isidentifier():
            raise ValueError(f"Invalid tag name: {name!r}")
        if not callable(render_fn):
            raise ValueError(f"Renderer for {name!r} is not callable")
        self._renderers[name] = render_fn

    def get(self, name: str) -> RenderableTag:
        return self._renderers[name]

    def names(self) -> list[str]:
        return sorted(self._renderers)

    def __contains__(self, name: object) -> bool:
        return name in self._renderers

    def render(self, invocation: TagInvocation) -> str:
        return self.get(invocation.name)(invocation)


def render_custom_tag(invocation: TagInvocation) -> str:
    """Render ``custom_tag``: the same fragment whatever the arguments."""
    return CUSTOM_TAG_MARKUP


default_registry = TagRegistry()


def register_tag(name: str, render_fn: RenderableTag) -> None:
    """Register a tag on the default registry."""
    default_registry.register(name, render_fn)


register_tag("custom_tag", render_custom_tag)


class TagExtension(Extension):
    """Jinja2 extension rendering registered tags.

    The set of tags is read from the registry when the environment is
    created; tags registered later need a new environment.
    """

    registry: TagRegistry = default_registry

    def __init__(self, environment: Environment):
        super().__init__(environment)
        self.tags = set(self.registry.names())

    def parse(self, parser):
        token = next(parser.stream)
        tokens: list[str] = []
        while parser.stream.current.type != "block_end":
            tokens.append(str(next(parser.stream).value))
        call = self.call_method(
            "_render",
            [nodes.Const(token.value), nodes.Const(" ".join(tokens)), nodes.Const(token.lineno)],
            lineno=token.lineno,
        )
        return nodes.Output([call], lineno=token.lineno)

    def _render(self, name: str, arguments: str, lineno: int) -> Markup:
        return Markup(self.registry.render(TagInvocation(name, arguments, lineno)))


def tag_extension(registry: TagRegistry) -> type[TagExtension]:
    """Return a ``TagExtension`` subclass bound to ``registry``."""
    return type("BoundTagExtension", (TagExtension,), {"registry": registry})


def create_environment(
    loader: BaseLoader | None = None,
    registry: TagRegistry | None = None,
    extensions: Iterable[type[Extension] | str] = (),
) -> Environment:
    """Create a Jinja2 environment with the tag extension installed.

    Args:
        loader: Optional template loader.
        registry: Registry to expose; the default registry when omitted.
        extensions: Extra Jinja2 extensions.

    Returns:
        Configured Jinja2 environment.
    """
    extension = TagExtension if registry is None else tag_extension(registry)
    return Environment(
        loader=loader,
        autoescape=select_autoescape(["html", "xml"]),
        extensions=[extension, *extensions],
    )
