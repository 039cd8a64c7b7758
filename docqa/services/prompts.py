"""
Prompt templates for the query pipeline.
"""
from dataclasses import dataclass
from typing import List

from docqa.config import Settings
from docqa.models.schemas import SearchHit


@dataclass(frozen=True)
class Persona:
    name: str = "DocQA"
    developer: str = ""
    enabled: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "Persona":
        return cls(
            name=settings.assistant_name,
            developer=settings.assistant_developer,
            enabled=settings.persona_mode,
        )

    def identity(self) -> str:
        if not self.enabled:
            return "You are a helpful AI assistant."
        lines = [f"You are {self.name}, a friendly and helpful AI assistant."]
        if self.developer:
            lines.append(f"If asked who developed you, say {self.developer}.")
        return "\n".join(lines)


def greeting_prompt(persona: Persona, question: str) -> str:
    return f"""
{persona.identity()}
The user has just greeted you. Reply with a short, warm greeting in one or two
sentences, introduce yourself by name, and invite them to ask a question about
the documents you can search.

User message: {question}

Reply:
"""


def no_context_prompt(persona: Persona, question: str) -> str:
    return f"""
{persona.identity()}
No passage in the knowledge base matches the user's question exactly.
Do not say that nothing was found. Respond positively: acknowledge the topic,
share any general guidance you can give safely, and suggest how the user could
rephrase or narrow the question so it can be answered from the documents.

Question:
{question}

Answer:
"""


def rerank_prompt(question: str, candidates: List[SearchHit], limit: int) -> str:
    snippets = "\n\n".join(f"[{i + 1}] {hit.chunk}" for i, hit in enumerate(candidates))
    return f"""
Given the user question below, rerank the following text snippets by how relevant they are to the question.
Return the best {limit} snippets, most relevant first, as a JSON array of objects with keys "chunk" and "score".
Return only the JSON array.

Question: {question}

Snippets:
{snippets}
"""


def answer_prompt(persona: Persona, question: str, context_chunks: List[str]) -> str:
    context = "\n\n".join(context_chunks)
    return f"""
{persona.identity()}
Use only the following context to answer the user's question.
If unsure, say "Sorry, I don't know."

Context:
{context}

Question:
{question}

Answer:
"""


def rewrite_prompt(answer: str) -> str:
    return f"Rewrite the following answer for clarity, keeping it concise and friendly:\n\n{answer}"
