# Copyright (C) 2018-'25  Frank Sachsenheim
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
The compilation of stylesheets. A :class:`Stylesheet` validates the stylesheet
document, resolves included and imported modules and collects the declarations in
the lookup structures that a transformation consults.
"""

from __future__ import annotations

import logging
import math
import warnings
from collections.abc import Callable, Iterator
from types import MappingProxyType
from typing import TYPE_CHECKING, NamedTuple, Optional
from urllib.parse import urljoin

from _transmute.exceptions import (
    XSLTUnsupportedFeature,
    XSLTValidationError,
)
from _transmute.grammar import _is_whitespace, _is_ncname
from _transmute.names import XSLT_NAMESPACE, Namespaces, split_qualified_name
from _transmute.nodes import DocumentNode, ElementNode, TextNode
from _transmute.xpath.formatting import DecimalFormat
from _transmute.xpath.parser import parse
from _transmute.xslt.patterns import compile_pattern, default_priority


if TYPE_CHECKING:
    from typing import Final

    from _transmute.nodes import NodeBase
    from _transmute.typing import QualifiedName
    from _transmute.xpath.ast import Expr
    from _transmute.xslt.patterns import Pattern, PatternAlternative

    ModuleResolver = Callable[[str], DocumentNode]


logger = logging.getLogger(__name__)


SUPPORTED_VERSIONS: Final = (1.0, 2.0, 3.0)

DECLARATIONS: Final = frozenset(
    (
        "attribute-set",
        "decimal-format",
        "function",
        "import",
        "include",
        "key",
        "mode",
        "namespace-alias",
        "output",
        "param",
        "preserve-space",
        "strip-space",
        "template",
        "variable",
    )
)

UNSUPPORTED_DECLARATIONS: Final = frozenset(
    (
        "accumulator",
        "character-map",
        "expose",
        "global-context-item",
        "import-schema",
        "use-package",
    )
)

REQUIRED_ATTRIBUTES: Final = MappingProxyType(
    {
        "analyze-string": ("select", "regex"),
        "attribute": ("name",),
        "attribute-set": ("name",),
        "call-template": ("name",),
        "copy-of": ("select",),
        "element": ("name",),
        "evaluate": ("xpath",),
        "for-each": ("select",),
        "for-each-group": ("select",),
        "function": ("name",),
        "if": ("test",),
        "import": ("href",),
        "include": ("href",),
        "iterate": ("select",),
        "key": ("name", "match"),
        "map-entry": ("key",),
        "namespace": ("name",),
        "namespace-alias": ("stylesheet-prefix", "result-prefix"),
        "param": ("name",),
        "preserve-space": ("elements",),
        "processing-instruction": ("name",),
        "strip-space": ("elements",),
        "variable": ("name",),
        "when": ("test",),
        "with-param": ("name",),
    }
)

ON_NO_MATCH_VALUES: Final = frozenset(
    (
        "deep-copy",
        "deep-skip",
        "fail",
        "shallow-copy",
        "shallow-skip",
        "text-only-copy",
    )
)


# data structures


class TemplateRule(NamedTuple):
    """One alternative of a template's match pattern with its ranking properties."""

    element: ElementNode
    pattern: PatternAlternative
    priority: float
    precedence: int
    position: int
    modes: frozenset[str]

    @property
    def sort_key(self) -> tuple[int, float, int]:
        return self.precedence, self.priority, self.position


class KeyDefinition(NamedTuple):
    element: ElementNode
    pattern: Pattern
    use: Optional[str]


class SpaceRule(NamedTuple):
    precedence: int
    priority: float
    namespace: Optional[str]
    local_name: str
    strip: bool


# helpers


def is_xslt_element(node: NodeBase, local_name: Optional[str] = None) -> bool:
    return (
        isinstance(node, ElementNode)
        and node.namespace == XSLT_NAMESPACE
        and (local_name is None or node.local_name == local_name)
    )


def xslt_children(element: ElementNode, local_name: str) -> Iterator[ElementNode]:
    for child in element.child_nodes:
        if is_xslt_element(child, local_name):
            assert isinstance(child, ElementNode)
            yield child


def parse_version(value: Optional[str]) -> float:
    """
    :raises XSLTValidationError: If the value isn't a non-negative number.
    """
    try:
        version = float(value or "")
    except ValueError:
        version = math.nan
    if math.isnan(version) or math.isinf(version) or version < 0:
        raise XSLTValidationError("XSLT version not defined or invalid")
    return version


def effective_version(version: float) -> float:
    """Maps a declared version to the version that the stylesheet is processed as."""
    if version in SUPPORTED_VERSIONS:
        return version
    if version > SUPPORTED_VERSIONS[-1]:
        return SUPPORTED_VERSIONS[-1]
    candidates = [x for x in SUPPORTED_VERSIONS if x < version]
    return candidates[-1] if candidates else SUPPORTED_VERSIONS[0]


def is_stylesheet_element(element: Optional[ElementNode]) -> bool:
    return element is not None and is_xslt_element(element) and (
        element.local_name in ("stylesheet", "transform")
    )


def simplified_stylesheet(document: DocumentNode) -> DocumentNode:
    """
    Wraps a literal result element that is used as stylesheet in a stylesheet with a
    template that matches the document node.
    """
    root = document.document_element
    assert root is not None
    version = root.get_attribute((XSLT_NAMESPACE, "version"))
    if version is None:
        raise XSLTValidationError("XSLT version not defined or invalid")

    stylesheet = ElementNode(
        "stylesheet",
        {"version": version},
        namespace=XSLT_NAMESPACE,
        prefix="xsl",
        namespace_declarations=root.namespace_declarations,
    )
    template = ElementNode(
        "template", {"match": "/"}, namespace=XSLT_NAMESPACE, prefix="xsl"
    )
    stylesheet.append_child(template)
    root.detach()
    template.append_child(root)
    document.append_child(stylesheet)
    return document


def strip_stylesheet_whitespace(element: ElementNode):
    """
    Removes whitespace-only text nodes from a stylesheet tree, except those in an
    ``xsl:text`` element or in the scope of ``xml:space="preserve"``.
    """
    if is_xslt_element(element, "text"):
        return
    preserve = element.xml_space == "preserve"
    for child in element.child_nodes:
        if isinstance(child, ElementNode):
            strip_stylesheet_whitespace(child)
        elif (
            not preserve
            and isinstance(child, TextNode)
            and _is_whitespace(child.content)
        ):
            element.remove_child(child)


def validate_module(root: ElementNode):
    """
    :raises XSLTValidationError: If the version or the id attribute are invalid or if
                                 imports don't precede all other top-level elements.
    """
    parse_version(root.get_attribute("version"))
    if (identifier := root.get_attribute("id")) is not None and not _is_ncname(
        identifier
    ):
        raise XSLTValidationError("Invalid id attribute")

    seen_declaration = False
    for child in root.child_nodes:
        if not isinstance(child, ElementNode):
            continue
        if is_xslt_element(child, "import"):
            if seen_declaration:
                raise XSLTValidationError("<xsl:import> should be the first child node")
        else:
            seen_declaration = True


def module_references(document: DocumentNode) -> list[str]:
    """Returns the resolved URLs of a stylesheet module's includes and imports."""
    root = document.document_element
    if not is_stylesheet_element(root):
        return []
    assert root is not None
    validate_module(root)
    result = []
    for child in root.child_nodes:
        if is_xslt_element(child) and child.local_name in (  # type: ignore
            "import",
            "include",
        ):
            assert isinstance(child, ElementNode)
            if (href := child.get_attribute("href")) is not None:
                result.append(urljoin(document.base_url or "", href))
    return result


def _missing_attribute(element: ElementNode, version: float) -> Optional[str]:
    for name in REQUIRED_ATTRIBUTES.get(element.local_name, ()):
        if element.get_attribute(name) is None:
            return name
    if (
        element.local_name == "value-of"
        and element.get_attribute("select") is None
        and version < 2.0
    ):
        return "select"
    return None


# stylesheet


class Stylesheet:
    """
    A compiled stylesheet.

    :param document: The principal stylesheet module.
    :param resolve_module: A callable that returns the document for an absolute URL of
                           an included or imported module.
    """

    __slots__ = (
        "attribute_sets",
        "declared_version",
        "decimal_formats",
        "document",
        "extension_namespaces",
        "forwards_compatible",
        "functions",
        "global_parameters",
        "global_variables",
        "keys",
        "modes",
        "named_templates",
        "namespace_aliases",
        "outputs",
        "root",
        "space_rules",
        "template_rules",
        "version",
        "_expressions",
        "_excluded_namespaces",
        "_expand_text",
        "_namespaces",
        "_namespaces_by_scope",
        "_precedence",
        "_position",
        "_resolve_module",
        "_rules_by_mode",
        "_visited",
    )

    def __init__(
        self,
        document: DocumentNode,
        resolve_module: Optional[ModuleResolver] = None,
    ):
        self.document: Final = document
        self.attribute_sets: dict[str, list[ElementNode]] = {}
        self.decimal_formats: dict[str, DecimalFormat] = {"": DecimalFormat()}
        self.extension_namespaces: set[str] = set()
        self.functions: dict[tuple[str, int], ElementNode] = {}
        self.global_parameters: set[str] = set()
        self.global_variables: dict[str, ElementNode] = {}
        self.keys: dict[str, list[KeyDefinition]] = {}
        self.modes: dict[str, str] = {}
        self.named_templates: dict[str, ElementNode] = {}
        self.namespace_aliases: dict[str, tuple[str, Optional[str]]] = {}
        self.outputs: dict[str, dict[str, str]] = {"": {}}
        self.space_rules: list[SpaceRule] = []
        self.template_rules: list[TemplateRule] = []

        self._expressions: dict[str, Expr] = {}
        self._excluded_namespaces: dict[int, frozenset[str]] = {}
        self._expand_text: dict[int, bool] = {}
        self._namespaces: dict[int, Namespaces] = {}
        self._namespaces_by_scope: dict[frozenset, Namespaces] = {}
        self._precedence = 0
        self._position = 0
        self._resolve_module = resolve_module
        self._rules_by_mode: dict[str, list[TemplateRule]] = {}
        self._visited: set[str] = set()

        root = self._prepare_module(document)
        self.root: Final = root
        self.declared_version: Final = root.get_attribute("version") or ""
        declared = parse_version(self.declared_version)
        self.version: Final = effective_version(declared)
        self.forwards_compatible: Final = declared not in SUPPORTED_VERSIONS
        if self.forwards_compatible:
            warnings.warn(
                f"The XSLT version {self.declared_version} isn't supported, the "
                f"stylesheet is processed as version {self.version} in "
                "forwards-compatible mode.",
                UserWarning,
            )

        if document.base_url:
            self._visited.add(document.base_url)
        self._compile_module(root, document.base_url)

    # compilation

    def _prepare_module(self, document: DocumentNode) -> ElementNode:
        document = document.clone(deep=True)
        root = document.document_element
        if root is None:
            raise XSLTValidationError("The stylesheet document has no root element.")
        if not is_xslt_element(root):
            document = simplified_stylesheet(document)
            root = document.document_element
            assert root is not None
        elif not is_stylesheet_element(root):
            raise XSLTValidationError(
                "The root element must be <xsl:stylesheet> or <xsl:transform>."
            )

        validate_module(root)
        strip_stylesheet_whitespace(root)
        return root

    def _load_module(
        self, href: str, base_url: Optional[str]
    ) -> tuple[ElementNode, str]:
        url = urljoin(base_url or "", href)
        if url in self._visited:
            raise XSLTValidationError(
                f"The stylesheet module {url} includes or imports itself."
            )
        self._visited.add(url)
        if self._resolve_module is None:
            raise XSLTValidationError(
                f"The stylesheet module {url} can't be resolved."
            )
        logger.debug("Resolving stylesheet module %s", url)
        document = self._resolve_module(url)
        if document.base_url is None:
            document.base_url = url
        return self._prepare_module(document), url

    def _collect_declarations(
        self,
        root: ElementNode,
        base_url: Optional[str],
        imports: list[tuple[ElementNode, str]],
        declarations: list[ElementNode],
    ):
        if any(isinstance(x, TextNode) for x in root.child_nodes):
            raise XSLTValidationError(
                "Text isn't allowed at the top level of a stylesheet."
            )

        if prefixes := root.get_attribute("extension-element-prefixes"):
            self.extension_namespaces.update(self._resolve_prefixes(root, prefixes))

        for child in root.child_nodes:
            if not isinstance(child, ElementNode):
                continue
            if child.namespace != XSLT_NAMESPACE:
                if not child.namespace:
                    raise XSLTValidationError(
                        f"The top-level element <{child.local_name}> must be in a "
                        "namespace."
                    )
                continue
            match child.local_name:
                case "import":
                    href = child.get_attribute("href")
                    if href is None:
                        raise XSLTValidationError(
                            "Missing required attribute `href`.", instruction="import"
                        )
                    imports.append(self._load_module(href, base_url))
                case "include":
                    href = child.get_attribute("href")
                    if href is None:
                        raise XSLTValidationError(
                            "Missing required attribute `href`.", instruction="include"
                        )
                    included, url = self._load_module(href, base_url)
                    self._collect_declarations(included, url, imports, declarations)
                case name if name in DECLARATIONS:
                    declarations.append(child)
                case name if name in UNSUPPORTED_DECLARATIONS:
                    raise XSLTUnsupportedFeature(
                        "This declaration isn't supported.", instruction=name
                    )
                case name:
                    if not self.forwards_compatible:
                        raise XSLTValidationError(
                            "Unknown declaration.", instruction=name
                        )
                    logger.debug("Ignoring unknown declaration <xsl:%s>.", name)

    def _compile_module(self, root: ElementNode, base_url: Optional[str]):
        imports: list[tuple[ElementNode, str]] = []
        declarations: list[ElementNode] = []
        self._collect_declarations(root, base_url, imports, declarations)

        for imported_root, imported_base_url in imports:
            self._compile_module(imported_root, imported_base_url)

        self._precedence += 1
        precedence = self._precedence
        for declaration in declarations:
            self._validate_instructions(declaration)
            getattr(self, "_declare_" + declaration.local_name.replace("-", "_"))(
                declaration, precedence
            )

    def _validate_instructions(self, element: ElementNode):
        if element.namespace == XSLT_NAMESPACE and (
            missing := _missing_attribute(element, self.version)
        ):
            raise XSLTValidationError(
                f"Missing required attribute `{missing}`.",
                instruction=element.local_name,
            )
        for child in element.child_nodes:
            if isinstance(child, ElementNode):
                self._validate_instructions(child)

    # declarations

    def _declare_attribute_set(self, element: ElementNode, precedence: int):
        name = element.get_attribute("name")
        assert name is not None
        self.attribute_sets.setdefault(name, []).append(element)

    def _declare_decimal_format(self, element: ElementNode, precedence: int):
        properties = {}
        for attribute in element.attributes:
            if attribute.namespace or attribute.local_name == "name":
                continue
            field = attribute.local_name.replace("-", "_").replace("NaN", "nan")
            if field not in DecimalFormat._fields:
                raise XSLTValidationError(
                    f"Unknown attribute `{attribute.local_name}`.",
                    instruction="decimal-format",
                )
            properties[field] = attribute.value
        self.decimal_formats[element.get_attribute("name", "")] = DecimalFormat(
            **properties
        )

    def _declare_function(self, element: ElementNode, precedence: int):
        name = element.get_attribute("name")
        assert name is not None
        arity = sum(1 for _ in xslt_children(element, "param"))
        self.functions[(self.expanded_name(element, name), arity)] = element

    def _declare_key(self, element: ElementNode, precedence: int):
        name = element.get_attribute("name")
        match = element.get_attribute("match")
        assert name is not None and match is not None
        self.keys.setdefault(name, []).append(
            KeyDefinition(element, compile_pattern(match), element.get_attribute("use"))
        )

    def _declare_mode(self, element: ElementNode, precedence: int):
        on_no_match = element.get_attribute("on-no-match", "text-only-copy")
        if on_no_match not in ON_NO_MATCH_VALUES:
            raise XSLTValidationError(
                f"Invalid value of `on-no-match`: {on_no_match}", instruction="mode"
            )
        self.modes[element.get_attribute("name", "#default")] = on_no_match

    def _declare_namespace_alias(self, element: ElementNode, precedence: int):
        namespaces = []
        for attribute in ("stylesheet-prefix", "result-prefix"):
            prefix = element.get_attribute(attribute)
            if prefix == "#default":
                prefix = None
            namespace = element.lookup_namespace(prefix)
            if namespace is None and prefix is not None:
                raise XSLTValidationError(
                    f"The prefix `{prefix}` isn't declared.",
                    instruction="namespace-alias",
                )
            namespaces.append((namespace or "", prefix))
        (stylesheet_namespace, _), result = namespaces
        self.namespace_aliases[stylesheet_namespace] = result

    def _declare_output(self, element: ElementNode, precedence: int):
        properties = self.outputs.setdefault(element.get_attribute("name", ""), {})
        for attribute in element.attributes:
            if attribute.namespace or attribute.local_name == "name":
                continue
            if attribute.local_name == "cdata-section-elements":
                names = " ".join(
                    "{{{}}}{}".format(*self.resolve_element_name(element, x))
                    for x in attribute.value.split()
                )
                properties["cdata-section-elements"] = names
            else:
                properties[attribute.local_name] = attribute.value

    def _declare_param(self, element: ElementNode, precedence: int):
        self._declare_variable(element, precedence)
        name = element.get_attribute("name")
        assert name is not None
        self.global_parameters.add(name)

    def _declare_preserve_space(self, element: ElementNode, precedence: int):
        self._add_space_rules(element, precedence, strip=False)

    def _declare_strip_space(self, element: ElementNode, precedence: int):
        self._add_space_rules(element, precedence, strip=True)

    def _add_space_rules(self, element: ElementNode, precedence: int, strip: bool):
        for token in (element.get_attribute("elements") or "").split():
            if token == "*":
                rule = SpaceRule(precedence, -0.5, None, "*", strip)
            elif token.endswith(":*"):
                namespace = self._resolve_prefix(element, token[:-2])
                rule = SpaceRule(precedence, -0.25, namespace, "*", strip)
            elif token.startswith("*:"):
                rule = SpaceRule(precedence, -0.25, None, token[2:], strip)
            else:
                namespace, local_name = self.resolve_element_name(element, token)
                rule = SpaceRule(precedence, 0, namespace, local_name, strip)
            self.space_rules.append(rule)

    def _declare_template(self, element: ElementNode, precedence: int):
        self._position += 1
        name = element.get_attribute("name")
        match = element.get_attribute("match")
        if name is None and match is None:
            raise XSLTValidationError(
                "A template needs a `match` or a `name` attribute.",
                instruction="template",
            )
        if name is not None:
            self.named_templates[name] = element
        if match is None:
            return

        pattern = compile_pattern(match)
        if pattern.is_self_referential():
            logger.debug("Ignoring the template that matches `%s`.", match)
            return

        modes = frozenset(element.get_attribute("mode", "#default").split())
        priority = element.get_attribute("priority")
        for alternative in pattern.alternatives:
            self.template_rules.append(
                TemplateRule(
                    element=element,
                    pattern=alternative,
                    priority=(
                        default_priority(alternative.expression)
                        if priority is None
                        else float(priority)
                    ),
                    precedence=precedence,
                    position=self._position,
                    modes=modes,
                )
            )

    def _declare_variable(self, element: ElementNode, precedence: int):
        name = element.get_attribute("name")
        assert name is not None
        self.global_variables[name] = element
        self.global_parameters.discard(name)

    # names & namespaces

    def _resolve_prefix(self, element: ElementNode, prefix: str) -> str:
        if (namespace := element.lookup_namespace(prefix)) is None:
            raise XSLTValidationError(f"The prefix `{prefix}` isn't declared.")
        return namespace

    def _resolve_prefixes(self, element: ElementNode, prefixes: str) -> set[str]:
        result = set()
        for prefix in prefixes.split():
            if prefix == "#default":
                result.add(element.lookup_namespace(None) or "")
            else:
                result.add(self._resolve_prefix(element, prefix))
        return result

    def expanded_name(self, element: ElementNode, name: str) -> str:
        """Resolves a prefixed name in the Clark notation."""
        if name.startswith("Q{"):
            return "{" + name[2:]
        prefix, local_name = split_qualified_name(name)
        if prefix is None:
            return local_name
        return f"{{{self._resolve_prefix(element, prefix)}}}{local_name}"

    def resolve_element_name(
        self, element: ElementNode, name: str
    ) -> QualifiedName:
        """Resolves a name of an element as it is noted in declarations."""
        prefix, local_name = split_qualified_name(name)
        if prefix is None:
            return "", local_name
        return self._resolve_prefix(element, prefix), local_name

    def namespaces(self, element: ElementNode) -> Namespaces:
        """
        The namespaces that the expressions of an element are evaluated with. The
        empty prefix is mapped to the ``xpath-default-namespace`` that is in effect.
        """
        if (result := self._namespaces.get(id(element))) is not None:
            return result

        declarations = element.in_scope_namespaces()
        declarations.pop("", None)
        node: Optional[NodeBase] = element
        while isinstance(node, ElementNode):
            name = (
                "xpath-default-namespace"
                if node.namespace == XSLT_NAMESPACE
                else (XSLT_NAMESPACE, "xpath-default-namespace")
            )
            if (namespace := node.get_attribute(name)) is not None:
                if namespace:
                    declarations[""] = namespace
                break
            node = node.parent

        scope = frozenset(declarations.items())
        if (result := self._namespaces_by_scope.get(scope)) is None:
            result = self._namespaces_by_scope[scope] = Namespaces(declarations)
        self._namespaces[id(element)] = result
        return result

    def excluded_namespaces(self, element: ElementNode) -> frozenset[str]:
        """
        The namespaces that aren't declared on literal result elements, that is the
        XSLT namespace, extension namespaces and excluded result prefixes.
        """
        if (result := self._excluded_namespaces.get(id(element))) is not None:
            return result

        excluded = {XSLT_NAMESPACE} | self.extension_namespaces
        node: Optional[NodeBase] = element
        while isinstance(node, ElementNode):
            for name in (
                ("exclude-result-prefixes", "extension-element-prefixes")
                if node.namespace == XSLT_NAMESPACE
                else (
                    (XSLT_NAMESPACE, "exclude-result-prefixes"),
                    (XSLT_NAMESPACE, "extension-element-prefixes"),
                )
            ):
                if not (prefixes := node.get_attribute(name)):  # type: ignore
                    continue
                if prefixes.strip() == "#all":
                    excluded.update(node.in_scope_namespaces().values())
                else:
                    excluded.update(self._resolve_prefixes(node, prefixes))
            node = node.parent

        result = self._excluded_namespaces[id(element)] = frozenset(excluded)
        return result

    def expands_text(self, element: ElementNode) -> bool:
        """Tests whether text value templates are enabled for an element's content."""
        if (result := self._expand_text.get(id(element))) is not None:
            return result

        result = False
        node: Optional[NodeBase] = element
        while isinstance(node, ElementNode):
            name = (
                "expand-text"
                if node.namespace == XSLT_NAMESPACE
                else (XSLT_NAMESPACE, "expand-text")
            )
            if (value := node.get_attribute(name)) is not None:  # type: ignore
                result = value.strip() in ("yes", "true", "1")
                break
            node = node.parent

        self._expand_text[id(element)] = result
        return result

    # lookups

    def expression(self, text: str) -> Expr:
        """Returns the parsed expression, stylesheets' expressions are cached."""
        if (result := self._expressions.get(text)) is None:
            result = self._expressions[text] = parse(text)
        return result

    def rules_for_mode(self, mode: str) -> list[TemplateRule]:
        """
        The template rules that apply in a mode, ordered by import precedence, priority
        and declaration order, highest first.
        """
        if (result := self._rules_by_mode.get(mode)) is None:
            result = sorted(
                (
                    x
                    for x in self.template_rules
                    if mode in x.modes or "#all" in x.modes
                ),
                key=lambda x: x.sort_key,
                reverse=True,
            )
            self._rules_by_mode[mode] = result
        return result

    def strips_whitespace(self, element: ElementNode) -> bool:
        """Tests whether whitespace-only text in a source element is stripped."""
        best: Optional[tuple[int, float, int]] = None
        strip = False
        for index, rule in enumerate(self.space_rules):
            if rule.namespace is not None and rule.namespace != element.namespace:
                continue
            if rule.local_name not in ("*", element.local_name):
                continue
            key = (rule.precedence, rule.priority, index)
            if best is None or key > best:
                best, strip = key, rule.strip
        return strip


__all__ = (
    KeyDefinition.__name__,
    Stylesheet.__name__,
    TemplateRule.__name__,
    is_xslt_element.__name__,
    module_references.__name__,
    parse_version.__name__,
    validate_module.__name__,
    xslt_children.__name__,
)
