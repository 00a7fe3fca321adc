"""Prompt templates and single-shot prompt operations."""
import re
from enum import Enum
from typing import Dict

import structlog

from ragchain.chat_models import ChatModel
from ragchain.errors import BackendFailureError, BlankInputError, ConfigurationError
from ragchain.rag.models import Completion

logger = structlog.get_logger()

# {{name}} placeholders, whitespace inside the braces allowed
VARIABLE_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")

TEMPLATE_SUFFIX = "\nInstructions: {{instructions}}\nDataset: {{dataset}}"

SENTIMENT_PROMPT = (
    "Analyze sentiment of {text}\n\n"
    "Answer with exactly one word: POSITIVE, NEUTRAL or NEGATIVE."
)

SENTIMENT_PATTERN = re.compile(r"\b(positive|neutral|negative)\b", re.IGNORECASE)


class Sentiment(str, Enum):
    POSITIVE = "POSITIVE"
    NEUTRAL = "NEUTRAL"
    NEGATIVE = "NEGATIVE"


def render_template(template: str, variables: Dict[str, str]) -> str:
    """Substitute {{name}} placeholders in one pass.

    Raises:
        ConfigurationError: If the template uses a variable with no value
    """
    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables:
            raise ConfigurationError(
                f"No value for template variable '{name}'",
                details={"variables": sorted(variables)},
            )
        return variables[name]

    return VARIABLE_PATTERN.sub(substitute, template)


def render_prompt_template(template: str, instructions: str, dataset: str) -> str:
    """Append the instructions and dataset slots to template and fill them."""
    return render_template(
        template + TEMPLATE_SUFFIX,
        {"instructions": instructions, "dataset": dataset},
    )


def answer_prompt(chat_model: ChatModel, prompt: str) -> Completion:
    """Send prompt to the model as a single user message."""
    if not prompt.strip():
        raise BlankInputError("Prompt is blank")
    return chat_model.generate(prompt)


def parse_sentiment(reply: str) -> Sentiment:
    """Read the first sentiment label out of a model reply.

    Raises:
        ValueError: If the reply names no sentiment
    """
    match = SENTIMENT_PATTERN.search(reply)
    if match is None:
        raise ValueError(f"no sentiment label in reply {reply[:80]!r}")
    return Sentiment(match.group(1).upper())


def analyze_sentiment(chat_model: ChatModel, text: str) -> Sentiment:
    """Classify the sentiment of text with the chat model.

    Raises:
        BlankInputError: If text is blank
        BackendFailureError: If the call fails or the reply is not a label
    """
    if not text.strip():
        raise BlankInputError("Text to analyze is blank")

    completion = chat_model.generate(SENTIMENT_PROMPT.format(text=text))
    try:
        sentiment = parse_sentiment(completion.text)
    except ValueError as e:
        backend = getattr(chat_model, "backend_name", "chat")
        raise BackendFailureError(backend, "sentiment", str(e)) from e

    logger.info("sentiment_analyzed", sentiment=sentiment.value, text_length=len(text))
    return sentiment
