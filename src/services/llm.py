# services/llm.py

import os
import logging
from typing import Optional
from anthropic import Anthropic

import prompts

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────
# MODÈLE
# Reformulation = tâche courte et factuelle,
# température basse pour ne rien inventer
# ─────────────────────────────────────────

MODEL = os.getenv("REFORMULATION_MODEL", "claude-sonnet-4-5")
MAX_TOKENS = 2000
TEMPERATURE = 0.3

FAILURE_MESSAGE = "La reformulation n'a pas pu être effectuée. Merci de réessayer."

_client: Optional[Anthropic] = None


class ReformulationError(Exception):
    pass


def _get_client() -> Anthropic:
    global _client
    if _client is None:
        _client = Anthropic(api_key=os.environ["ANTHROPIC_API_KEY"])
    return _client


# ─────────────────────────────────────────
# FONCTION PRINCIPALE
# ─────────────────────────────────────────

def reformulate(text: str, kind: str = "rapport") -> str:
    """
    kind : "rapport"     → rapport d'intervention
           "description" → description du problème

    Lève ReformulationError("Le texte est vide") si rien à reformuler,
    ReformulationError(FAILURE_MESSAGE) si le LLM échoue.
    """
    if not text or not text.strip():
        raise ReformulationError("Le texte est vide")

    if kind == "description":
        prompt = prompts.reformulate_description(text)
    else:
        prompt = prompts.reformulate_report(text)

    try:
        response = _get_client().messages.create(
            model=MODEL,
            max_tokens=MAX_TOKENS,
            temperature=TEMPERATURE,
            system=prompts.SYSTEM_PROMPT,
            messages=[
                {"role": "user", "content": prompt}
            ]
        )

        logger.info(
            f"LLM [{MODEL}] — {response.usage.input_tokens}in/"
            f"{response.usage.output_tokens}out tokens"
        )

        result = response.content[0].text.strip() if response.content else ""

    except Exception as e:
        logger.error(f"LLM erreur : {e}")
        raise ReformulationError(FAILURE_MESSAGE) from e

    if not result:
        logger.error("LLM : réponse vide")
        raise ReformulationError(FAILURE_MESSAGE)

    return result


def reformulate_report(rapport_brut: str) -> str:
    return reformulate(rapport_brut, "rapport")


def reformulate_description(description: str) -> str:
    return reformulate(description, "description")
