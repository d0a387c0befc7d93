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

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Sequence
from importlib.metadata import entry_points
from importlib.util import find_spec
from typing import TYPE_CHECKING, overload


if TYPE_CHECKING:
    from _transmute.parser import Event, ParserOptions
    from _transmute.typing import (
        BinaryReader,
        GenericDecorated,
        Loader,
        LoaderConstraint,
        SecondOrderDecorator,
        XPathFunction,
        XSLTInstruction,
    )


class PluginManager:
    __slots__ = (
        "loaders",
        "parsers",
        "xpath_functions",
        "xslt_instructions",
    )

    def __init__(self):
        self.loaders: list[Loader] = []
        self.parsers: dict[str, type[XMLEventParserInterface]] = {}
        self.xpath_functions: dict[str, XPathFunction] = {}
        self.xslt_instructions: dict[str, XSLTInstruction] = {}

    def get_parser(
        self, preferences: str | Sequence[str]
    ) -> type[XMLEventParserInterface]:
        if isinstance(preferences, str):
            preferences = (preferences,)

        for name in preferences:
            if (parser := self.parsers.get(name)) is not None:
                return parser

        for parser in self.parsers.values():
            return parser

        raise RuntimeError("No available parsers.")

    @staticmethod
    def load_plugins():
        """
        Loads all modules that are registered as entrypoint in the ``transmute`` group
        and imports contributed extensions whose dependencies are available.
        """
        import _transmute.plugins.core_loaders  # noqa: F401

        if find_spec("httpx"):
            import _transmute.plugins.web_loader
        if find_spec("lxml.etree"):
            import _transmute.plugins.lxml_parser
        if find_spec("xml.sax"):
            import _transmute.plugins.expat_parser  # noqa: F401

        for entrypoint in entry_points().select(group="transmute"):
            entrypoint.load()

    def register_loader(
        self, before: LoaderConstraint = None, after: LoaderConstraint = None
    ) -> SecondOrderDecorator:
        """
        Registers a document loader. Loaders are used to turn what the ``document()``
        and ``doc()`` functions, ``xsl:include`` and ``xsl:import`` refer to, as well as
        the input of a transformation, into nodes.

        An example module that is specified as ``transmute`` plugin for an IPFS loader
        might look like this:

        .. testcode::

            from os import getenv
            from types import SimpleNamespace
            from typing import Any

            from _transmute.plugins import plugin_manager
            from _transmute.plugins.web_loader import web_loader
            from _transmute.typing import LoaderResult


            IPFS_GATEWAY = getenv("IPFS_GATEWAY_PREFIX", "https://ipfs.io/ipfs/")


            @plugin_manager.register_loader()
            def ipfs_loader(source: Any, config: SimpleNamespace) -> LoaderResult:
                if isinstance(source, str) and source.startswith("ipfs://"):

                    config.source_url = source
                    config.ipfs_gateway_source_url = IPFS_GATEWAY + source[7:]

                    return web_loader(config.ipfs_gateway_source_url, config)

                # return an indication why this loader didn't attempt to load in order
                # to support debugging
                return "The input value is not an URL with the ipfs scheme."

        The ``config`` argument that is passed to a loader function carries the
        ``parser_options`` and a ``source_url`` if one is known.

        Loaders that retrieve a document from an URL should add the origin as string to
        the ``config`` object as ``source_url``.

        You might want to specify a loader to be considered before or after another
        one:

        .. testcode::

            from _transmute.plugins import plugin_manager
            from _transmute.plugins.web_loader import web_loader


            @plugin_manager.register_loader(before=web_loader)
            def mets_loader(source, config) -> LoaderResult:
                # loading logic here
                pass
        """

        if before is not None and after is not None:
            raise NotImplementedError(
                "Loaders may only define one constraint atm. Please open an issue with "
                "a use-case description if you need to define both."
            )

        registered_loaders = self.loaders

        if before is not None:
            if not isinstance(before, Iterable):
                before = (before,)
            index = min(registered_loaders.index(x) for x in before)

        elif after is not None:
            if not isinstance(after, Iterable):
                after = (after,)
            index = max(registered_loaders.index(x) for x in after) + 1

        else:
            index = len(registered_loaders)

        def registrar(loader: Loader) -> Loader:
            assert callable(loader)
            registered_loaders.insert(index, loader)
            return loader

        return registrar

    @overload
    def register_xpath_function(self, arg: str) -> SecondOrderDecorator: ...

    @overload
    def register_xpath_function(self, arg: GenericDecorated) -> GenericDecorated: ...

    def register_xpath_function(
        self, arg: str | GenericDecorated
    ) -> SecondOrderDecorator | GenericDecorated:
        """
        Custom XPath functions can be defined as shown in the following example. The
        first argument to a function is always an instance of
        :class:`_transmute.xpath.context.ExprContext` followed by the expression's
        arguments as :class:`_transmute.xpath.values.Value` instances. A function may
        return a value instance or a plain Python object that is converted like a
        variable value.

        .. testcode::

            from _transmute.plugins import plugin_manager
            from _transmute.xpath import evaluate
            from _transmute.xpath.context import ExprContext
            from transmute import parse_tree


            @plugin_manager.register_xpath_function("is-last")
            def is_last(context: ExprContext) -> bool:
                return context.position == context.context_size() - 1

            @plugin_manager.register_xpath_function
            def lowercase(_, string) -> str:
                return string.to_string().lower()


            root = parse_tree("<root><node/><node foo='BAR'/></root>")
            print(evaluate(root, "//*[is-last() and lowercase(@foo)='bar']").first)

        .. testoutput::

            <node foo="BAR"/>

        Names that contain a prefix like ``map:merge`` are resolved against the prefix
        as literally given in the expression.
        """
        if isinstance(arg, str):

            def wrapper(func: XPathFunction) -> XPathFunction:
                self.xpath_functions[arg] = func
                return func

            return wrapper

        if callable(arg):
            self.xpath_functions[arg.__name__] = arg
            return arg

        raise TypeError

    def register_xslt_instruction(self, name: str) -> SecondOrderDecorator:
        """
        Registers a handler for an XSLT instruction with the given local name. A
        handler is called with the running
        :class:`_transmute.xslt.processor.Transformation`, the instruction element and
        the expression context. It writes its results to the transformation's output
        builder.

        .. testcode::

            from _transmute.plugins import plugin_manager


            @plugin_manager.register_xslt_instruction("shout")
            def shout(transformation, instruction, context):
                transformation.output.add_text(
                    instruction.get_attribute("text", "").upper()
                )

        A registered name that clashes with a contributed instruction replaces it.
        """

        def registrar(handler: XSLTInstruction) -> XSLTInstruction:
            assert callable(handler)
            self.xslt_instructions[name] = handler
            return handler

        return registrar


class XMLEventParserInterface(ABC):
    """
    This is the base class for parser adapters. After initialization their
    :meth:`parse` method will be called for iterate over parser events. Instances
    don't have to care about their state beyond the parsing of one input stream as
    they're only employed once.

    :param options: The parsing options the user passed with the input stream.
    :param base_url: The base URL for resolving references.
    :param encoding: This is the encoding that was either provided by the user,
                     noted in an XML document declaration or indicated by a Byte Order
                     Mark. But it could also be the fallback value ``utf-8`` if none of
                     the prior was available.
    """

    name: str
    """
    The parser can be selected by this class attribute's value as (member of) a
    :attr:`ParserOptions.preferred_parsers` setting.
    """

    def __init_subclass__(cls):
        plugin_manager.parsers[cls.name] = cls

    @abstractmethod
    def __init__(self, options: ParserOptions, base_url: str | None, encoding: str):
        pass

    @abstractmethod
    def parse(self, data: BinaryReader | str) -> Iterator[Event]:
        """
        This method must be implemented and yield the parsed contents in document order
        as :obj:`Event` tuples.
        """
        pass


plugin_manager = PluginManager()


__all__ = (XMLEventParserInterface.__name__, "plugin_manager")
