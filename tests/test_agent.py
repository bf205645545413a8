import asyncio

import pytest
from langchain_core.messages import AIMessage
from langchain_core.runnables import RunnableLambda

from agent.agent import ResponseGenerator, build_llm
from agent.core.prompt import SYSTEM_PROMPT
from agent.errors import ProviderError
from tests.fakes import make_settings


def test_complete_sends_context_and_question():
    seen = []

    def fake_llm(prompt_value):
        seen.append(prompt_value.to_messages())
        return AIMessage(content="  it was at luigi's, dude  ")

    generator = ResponseGenerator(RunnableLambda(fake_llm))

    answer = asyncio.run(generator.complete("i forgot where we ate", "pizza night at luigi's"))

    assert answer == "it was at luigi's, dude"
    system, human = seen[0]
    assert system.content == SYSTEM_PROMPT
    assert human.content == "Context: pizza night at luigi's\n\nQuestion: i forgot where we ate"


def test_complete_wraps_upstream_failures():
    def broken_llm(prompt_value):
        raise TimeoutError("deadline exceeded")

    generator = ResponseGenerator(RunnableLambda(broken_llm))

    with pytest.raises(ProviderError):
        asyncio.run(generator.complete("q", "ctx"))


def test_build_llm_requires_api_key():
    settings = make_settings(google_api_key=None)

    with pytest.raises(RuntimeError, match="GOOGLE_API_KEY"):
        build_llm(settings)
