import pytest

# keep this before imports from transmute!
from tests import plugins  # noqa: F401

from tests.utils import stylesheet
from transmute import XSLTProcessor


@pytest.fixture
def processor():
    return XSLTProcessor()


@pytest.fixture
def transform(processor):
    """
    Transforms a source with the given stylesheet body and returns the serialized
    result.
    """

    def transform(source, body, version="1.0", attributes="", **kwargs):
        return processor.process(
            source, stylesheet(body, version, attributes), **kwargs
        )

    return transform
