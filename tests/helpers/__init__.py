"""Test doubles shared across the suite."""

from tests.helpers.fake_catalog import FakeCatalog, make_product
from tests.helpers.fake_llm import FakeLLMClient
from tests.helpers.platforms import FakeDirectory, make_connection, make_unusable

__all__ = [
    "FakeCatalog",
    "FakeDirectory",
    "FakeLLMClient",
    "make_connection",
    "make_product",
    "make_unusable",
]
