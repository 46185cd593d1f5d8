"""AI-assisted rewriting of a note as a stream of partial states."""

import dataclasses
import json
from collections.abc import Iterator
from enum import Enum

import requests
from loguru import logger

from codestickies.config import OLLAMA_HOST, OLLAMA_MODEL
from codestickies.core.store import NoteStore
from codestickies.errors import NoteNotFoundError, RewriteError, StickiesError
from codestickies.models.note import Note
from codestickies.protocols import RewriteServiceProtocol

SYSTEM_INSTRUCTIONS = (
    'You are a helpful AI Text Assistant inside of a macOS App called "CodeStickies" '
    "that allows users to create small Windows - similar to Apple's Sticky Notes - "
    "where they can write down Notes or Code. ALWAYS JUST MODIFY THE NOTE do NOT add "
    "any Comments but rather just respond with the Modified Note directly without any "
    "CodeBlocks or similar."
)


def build_prompt(prompt: str, note: Note) -> str:
    return f"{prompt}\n\nTitle: {note.display_title}\n\nNote:\n{note.text}"


class OllamaRewriteService:
    """Rewrite service streaming from an Ollama server's chat API."""

    def __init__(
        self,
        *,
        host: str = OLLAMA_HOST,
        model: str = OLLAMA_MODEL,
        timeout: float = 60.0,
    ) -> None:
        self.host = host.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.sess = requests.Session()

    def stream(self, prompt: str, note: Note) -> Iterator[str]:
        """Yield the accumulated response text after each received chunk.

        Raises:
            RewriteError: On connection, HTTP, or protocol errors.
        """
        payload = {
            "model": self.model,
            "stream": True,
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTIONS},
                {"role": "user", "content": build_prompt(prompt, note)},
            ],
        }
        logger.debug("Streaming rewrite from {} ({})", self.host, self.model)
        text = ""
        try:
            with self.sess.post(
                f"{self.host}/api/chat", json=payload, stream=True, timeout=self.timeout
            ) as r:
                r.raise_for_status()
                for line in r.iter_lines():
                    if not line:
                        continue
                    chunk = json.loads(line)
                    if chunk.get("error"):
                        msg = f"Rewrite failed: {chunk['error']}"
                        raise RewriteError(msg)
                    delta = chunk.get("message", {}).get("content", "")
                    if delta:
                        text += delta
                        yield text
                    if chunk.get("done"):
                        break
        except requests.RequestException as e:
            msg = f"Cannot reach rewrite service at {self.host}: {e}"
            raise RewriteError(msg) from e
        except json.JSONDecodeError as e:
            msg = f"Malformed response from rewrite service: {e}"
            raise RewriteError(msg) from e


class RewriteState(Enum):
    IDLE = "idle"
    GENERATING = "generating"
    FINISHED = "finished"
    ERROR = "error"


class RewriteSession:
    """Rewrite one note in place, keeping the prior text for ``revert()``.

    Each partial result is written through the store. Closing the generator
    returned by ``start()`` cancels the stream and keeps the partial text.
    """

    def __init__(self, store: NoteStore, note_id: str, service: RewriteServiceProtocol) -> None:
        self._store = store
        self.note_id = note_id
        self._service = service
        self.state = RewriteState.IDLE
        self.error: str | None = None
        self._previous_text: str | None = None

    def start(self, prompt: str) -> Iterator[Note]:
        """Run a rewrite, yielding the note after each partial update."""
        if self.state is RewriteState.GENERATING:
            msg = "A rewrite is already in progress"
            raise RuntimeError(msg)
        note = self._store.get(self.note_id)
        if note is None:
            msg = f"Note {self.note_id!r} not found"
            raise NoteNotFoundError(msg)

        self._previous_text = note.text
        self.state = RewriteState.GENERATING
        self.error = None
        stream = self._service.stream(prompt, note)
        try:
            for text in stream:
                yield self._store.update(
                    self.note_id, lambda n, text=text: dataclasses.replace(n, text=text)
                )
        except GeneratorExit:
            self.state = RewriteState.IDLE
            logger.info("Rewrite of {} cancelled", self.note_id)
            raise
        except StickiesError as e:
            self.state = RewriteState.ERROR
            self.error = str(e)
            logger.warning("Rewrite of {} failed: {}", self.note_id, e)
            return
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()
        self.state = RewriteState.FINISHED

    def revert(self) -> Note | None:
        """Restore the text from before the last ``start()``."""
        if self._previous_text is None:
            return None
        previous = self._previous_text
        note = self._store.update(
            self.note_id, lambda n: dataclasses.replace(n, text=previous)
        )
        self._previous_text = None
        self.state = RewriteState.IDLE
        return note
