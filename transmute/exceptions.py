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

from _transmute.exceptions import (
    FailedDocumentLoading,
    FailedResourceFetching,
    InvalidCodePath,
    InvalidOperation,
    ParsingEmptyStream,
    ParsingError,
    ParsingProcessingError,
    ParsingValidityError,
    TransmuteBaseException,
    XPathEvaluationError,
    XPathParsingError,
    XPathUnsupportedStandardFeature,
    XSLTDynamicError,
    XSLTError,
    XSLTUnsupportedFeature,
    XSLTValidationError,
)


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
