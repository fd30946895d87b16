"""
Shared fixtures for advisor_chat tests.
"""

import pytest
from fakes import build_settings

from advisor_chat.core.config import Settings
from advisor_chat.services.context_assembler import AssembledContext, assemble_context


@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest.fixture
def simple_context() -> AssembledContext:
    return assemble_context({"base": "You are a helpful assistant."})
