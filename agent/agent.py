from __future__ import annotations

import logging
from typing import Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable
from langchain_google_genai import ChatGoogleGenerativeAI

from agent.core.prompt import SYSTEM_PROMPT
from agent.errors import ProviderError
from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)


def build_llm(settings: Optional[Settings] = None) -> BaseChatModel:
    settings = settings or get_settings()
    if not settings.google_api_key:
        raise RuntimeError(
            "GOOGLE_API_KEY not set. Please configure it in environment or .env"
        )

    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=settings.google_api_key,
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
    )


def build_recall_chain(llm: Runnable) -> Runnable:
    prompt = ChatPromptTemplate.from_messages(
        [
            ("system", SYSTEM_PROMPT),
            ("human", "Context: {context}\n\nQuestion: {question}"),
        ]
    )
    return prompt | llm | StrOutputParser()


class ResponseGenerator:
    """Answers a recall question from retrieved memory text."""

    def __init__(self, llm: Runnable) -> None:
        self._chain = build_recall_chain(llm)

    async def complete(self, question: str, context: str) -> str:
        logger.info(
            "Generating answer: question_len=%s context_len=%s",
            len(question),
            len(context),
        )
        try:
            answer = await self._chain.ainvoke({"question": question, "context": context})
        except Exception as exc:
            raise ProviderError(f"Completion request failed: {exc}") from exc
        return answer.strip()


def build_response_generator(settings: Optional[Settings] = None) -> ResponseGenerator:
    return ResponseGenerator(build_llm(settings))
