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

"""These are the specific transmute exceptions."""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING, Any

if TYPE_CHECKING:
    from _transmute.typing import Loader


class TransmuteBaseException(Exception):
    pass


class FailedDocumentLoading(TransmuteBaseException):
    def __init__(self, source: Any, excuses: dict[Loader, str | Exception]):
        self.source = source
        self.excuses = excuses

    def __str__(self):
        return f"Couldn't load {self.source!r} with these loaders: {self.excuses}"


class FailedResourceFetching(TransmuteBaseException):
    """Raised when a stylesheet module or a document can't be fetched."""

    def __init__(self, href: str, reason: str | Exception):
        self.href = href
        self.reason = reason
        super().__init__(href, reason)

    def __str__(self):
        return f"Couldn't fetch {self.href!r}: {self.reason}"


class InvalidCodePath(TransmuteBaseException, RuntimeError):
    """Raised when a code path that is not expected to be executed is reached."""

    def __init__(self):  # pragma: no cover
        super().__init__(
            "An unintended path was taken through the code. Please report this bug."
        )


class InvalidOperation(TransmuteBaseException):
    """Raised when an invalid operation is attempted by the client code."""

    pass


class ParsingError(TransmuteBaseException):
    pass


class ParsingProcessingError(ParsingError):
    pass


class ParsingValidityError(ParsingError):
    pass


class ParsingEmptyStream(ParsingProcessingError):
    def __init__(self):
        super().__init__("The input stream is empty.")


class XPathEvaluationError(TransmuteBaseException):
    def __init__(self, message: str, code: str = "XPTY0004"):
        super().__init__(message)
        self.code = code


class XPathParsingError(TransmuteBaseException):
    """Raised when an XPath expression can't be parsed."""

    def __init__(
        self,
        expression: Optional[str] = None,
        position: Optional[int] = None,
        message: Optional[str] = None,
    ):
        self.expression = expression
        self.position = position
        self.message = message

    def __str__(self):
        expression = self.expression
        message = self.message or "Invalid expression."
        position = self.position or 0

        if expression is None:
            return f"XPath parsing error at character {position}: {message}"

        expression_length = len(expression)
        snippet_end = min(position + 16, expression_length)

        if expression_length > snippet_end:
            snippet = f"`{expression[position:snippet_end]}…`"
        else:
            snippet = f"`{expression[position:snippet_end]}`"

        if len(snippet) > 2:
            return (
                f"XPath parsing error at character {position} ({snippet}): {message}"
            )
        else:
            return f"XPath parsing error at character {position}: {message}"


class XPathUnsupportedStandardFeature(XPathParsingError):
    """Raised when an unsupported XPath expression feature is recognized."""

    def __init__(self, position: int, feature_description: str):
        super().__init__(
            position=position,
            message=f"{feature_description} is not supported.",
        )


class XSLTError(TransmuteBaseException):
    """The base class for errors that relate to a stylesheet."""

    def __init__(self, message: str, instruction: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.instruction = instruction

    def __str__(self):
        if self.instruction is None:
            return self.message
        return f"{self.message} (in <xsl:{self.instruction}>)"


class XSLTValidationError(XSLTError):
    """Raised when a stylesheet is structurally invalid."""


class XSLTUnsupportedFeature(XSLTError):
    """
    Raised when a recognized instruction, declaration or function isn't available,
    either generally or with the stylesheet's XSLT version.
    """


class XSLTDynamicError(XSLTError):
    """
    Raised by a stylesheet during a transformation, e.g. with a terminating
    ``xsl:message``, a failing ``xsl:assert`` or the ``error()`` function. These can be
    caught with ``xsl:try``.
    """

    def __init__(
        self,
        message: str,
        code: str = "FOER0000",
        value: Any = None,
        instruction: Optional[str] = None,
    ):
        super().__init__(message, instruction)
        self.code = code
        self.value = value


__all__ = (
    FailedDocumentLoading.__name__,
    FailedResourceFetching.__name__,
    InvalidCodePath.__name__,
    InvalidOperation.__name__,
    ParsingEmptyStream.__name__,
    ParsingError.__name__,
    ParsingProcessingError.__name__,
    ParsingValidityError.__name__,
    TransmuteBaseException.__name__,
    XPathEvaluationError.__name__,
    XPathParsingError.__name__,
    XPathUnsupportedStandardFeature.__name__,
    XSLTDynamicError.__name__,
    XSLTError.__name__,
    XSLTUnsupportedFeature.__name__,
    XSLTValidationError.__name__,
)
