"""
AnthropicSession - Anthropic SDK agent session

Runs prompts against the Anthropic messages API with a manual Agentic Loop
and yields :class:`SessionEvent` as it goes:

    1. Send the conversation to Claude
    2. If Claude wants to use tools -> execute tools -> send results back
    3. Repeat until Claude returns end_turn (no more tool calls)

The conversation is persisted through :class:`TranscriptStore`, so a new
session for the same mission resumes the most recent transcript.
"""

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional

import anthropic

from .persistence import TranscriptStore
from .session import AgentSession
from .tools import ToolRegistry, ToolResult
from .types import SessionEvent, SessionEventType
from ..errors import SessionError
from ..utils.logger import get_logger

logger = get_logger(__name__)

INTERRUPTED_TEXT = "[Interrupted]"

COMPACTION_PROMPT = (
    "Summarize the conversation so far for your own future reference: the task, "
    "decisions made, files changed, commands that matter, and what remains to do. "
    "Be concise but complete."
)


class AnthropicSession(AgentSession):
    """
    Agent session backed by ``anthropic.AsyncAnthropic``.

    The history only ever ends in a consistent state: an assistant turn and
    the tool results it requested are appended together, and an interrupted
    prompt is closed with a short assistant marker.
    """

    # Maximum number of agentic loop iterations per prompt
    MAX_ITERATIONS = 50

    def __init__(
        self,
        model_id: str,
        tools: ToolRegistry,
        mission_id: str,
        api_key: Optional[str] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
        store: Optional[TranscriptStore] = None,
        system_prompt: Optional[str] = None,
        max_tokens: int = 8192,
        compaction_threshold: int = 150_000,
    ):
        self._model_id = model_id
        self._tools = tools
        self._mission_id = mission_id
        self._client = client
        self._owns_client = client is None
        self._api_key = api_key
        self._store = store
        self._system_prompt = system_prompt
        self._max_tokens = max_tokens
        self._compaction_threshold = compaction_threshold

        self._history: List[Dict[str, Any]] = []
        self._transcript_id: Optional[str] = None
        self._aborted = False
        self._last_input_tokens = 0

        if store is not None:
            self._resume()

    @property
    def model(self) -> str:
        return f"anthropic/{self._model_id}"

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    @property
    def transcript_id(self) -> Optional[str]:
        return self._transcript_id

    def _get_client(self) -> anthropic.AsyncAnthropic:
        """Get or create Anthropic client."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        return self._client

    # ============================================
    # History
    # ============================================

    def _resume(self) -> None:
        self._transcript_id = self._store.latest_session_id(self._mission_id)
        if self._transcript_id is None:
            self._transcript_id = self._store.create_session(self._mission_id, self.model)
            logger.info("Started new transcript", transcript_id=self._transcript_id)
            return

        self._history = self._store.load_messages(self._transcript_id)
        logger.info("Resumed transcript", transcript_id=self._transcript_id, messages=len(self._history))
        self._close_interrupted_turn()

    def _append(self, *messages: Dict[str, Any]) -> None:
        self._history.extend(messages)
        if self._store is not None:
            self._store.append_messages(self._transcript_id, list(messages))

    def _close_interrupted_turn(self) -> None:
        if self._history and self._history[-1]["role"] == "user":
            self._append({"role": "assistant", "content": [{"type": "text", "text": INTERRUPTED_TEXT}]})

    # ============================================
    # AgentSession
    # ============================================

    async def prompt(self, text: str) -> AsyncIterator[SessionEvent]:
        self._aborted = False
        input_tokens = 0
        output_tokens = 0

        yield SessionEvent(SessionEventType.AGENT_START)

        try:
            if self._last_input_tokens >= self._compaction_threshold:
                summary = await self._compact()
                yield SessionEvent(SessionEventType.AUTO_COMPACTION_END, {"summary": summary})

            self._append({"role": "user", "content": text})
            logger.info("Sending to Anthropic API", prompt_preview=text[:80], model=self._model_id)

            iteration = 0
            while iteration < self.MAX_ITERATIONS and not self._aborted:
                iteration += 1
                logger.debug(f"Agentic loop iteration {iteration}")

                yield SessionEvent(SessionEventType.MESSAGE_START)
                async with self._get_client().messages.stream(**self._request_params()) as stream:
                    async for event in stream:
                        if event.type == "content_block_delta" and event.delta.type == "text_delta":
                            yield SessionEvent(SessionEventType.TEXT_DELTA, {"text": event.delta.text})
                    final_message = await stream.get_final_message()
                yield SessionEvent(SessionEventType.MESSAGE_END, {"stop_reason": final_message.stop_reason})

                usage = final_message.usage
                input_tokens += usage.input_tokens
                output_tokens += usage.output_tokens
                self._last_input_tokens = usage.input_tokens

                assistant_content = self._content_to_dicts(final_message.content)

                if final_message.stop_reason == "tool_use":
                    tool_results = []
                    for block in final_message.content:
                        if block.type != "tool_use":
                            continue
                        async for item in self._run_tool(block.id, block.name, dict(block.input or {})):
                            if isinstance(item, SessionEvent):
                                yield item
                            else:
                                tool_results.append(item)

                    self._append(
                        {"role": "assistant", "content": assistant_content},
                        {"role": "user", "content": tool_results},
                    )
                    continue

                if not assistant_content:
                    assistant_content = [{"type": "text", "text": "(no response)"}]
                self._append({"role": "assistant", "content": assistant_content})
                if final_message.stop_reason not in ("end_turn", "stop_sequence"):
                    logger.warning(f"Unexpected stop reason: {final_message.stop_reason}")
                logger.info("Agentic loop complete", iterations=iteration, stop_reason=final_message.stop_reason)
                break
            else:
                if not self._aborted:
                    logger.warning(f"Agentic loop reached max iterations ({self.MAX_ITERATIONS})")

            if self._aborted:
                logger.info("Prompt aborted")
            self._close_interrupted_turn()

        except (asyncio.CancelledError, GeneratorExit):
            self._close_interrupted_turn()
            raise

        except anthropic.APIError as e:
            logger.error("Anthropic API error", error=str(e))
            self._close_interrupted_turn()
            raise SessionError(f"Anthropic API error: {e}") from e

        finally:
            if self._store is not None and (input_tokens or output_tokens):
                self._store.record_usage(self._transcript_id, input_tokens, output_tokens)

        yield SessionEvent(
            SessionEventType.AGENT_END,
            {"input_tokens": input_tokens, "output_tokens": output_tokens},
        )

    async def abort(self) -> None:
        self._aborted = True

    async def dispose(self) -> None:
        """Clean up resources."""
        if self._client is not None and self._owns_client:
            await self._client.close()
        self._client = None
        if self._store is not None:
            self._store.close()
        logger.debug("AnthropicSession disposed")

    # ============================================
    # Helpers
    # ============================================

    def _request_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self._model_id,
            "max_tokens": self._max_tokens,
            "messages": self._history,
        }
        if self._system_prompt:
            params["system"] = self._system_prompt
        tools = self._tools.get_all_tools()
        if tools:
            params["tools"] = tools
        return params

    @staticmethod
    def _content_to_dicts(content: List[Any]) -> List[Dict[str, Any]]:
        blocks = []
        for block in content:
            if block.type == "text":
                blocks.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                blocks.append({"type": "tool_use", "id": block.id, "name": block.name, "input": block.input})
        return blocks

    async def _run_tool(self, tool_call_id: str, name: str, arguments: Dict[str, Any]):
        """
        Execute one tool, yielding session events while it runs and finally
        the ``tool_result`` block for the model.
        """
        logger.info(f"Executing tool: {name}", tool_id=tool_call_id)
        yield SessionEvent(
            SessionEventType.TOOL_EXECUTION_START,
            {"tool_call_id": tool_call_id, "tool_name": name, "args": arguments},
        )

        updates: asyncio.Queue = asyncio.Queue()
        task = asyncio.ensure_future(self._tools.execute_tool(name, arguments, on_update=updates.put_nowait))
        getter: Optional[asyncio.Future] = None
        try:
            while not task.done():
                getter = asyncio.ensure_future(updates.get())
                await asyncio.wait({task, getter}, return_when=asyncio.FIRST_COMPLETED)
                if getter.done():
                    yield self._tool_update(tool_call_id, getter.result())
                else:
                    getter.cancel()
                getter = None
            while not updates.empty():
                yield self._tool_update(tool_call_id, updates.get_nowait())

            try:
                result = task.result()
            except Exception as e:
                logger.exception(f"Tool execution failed: {name}")
                result = ToolResult.error(f"Error: {e}")
        finally:
            if getter is not None and not getter.done():
                getter.cancel()
            if not task.done():
                task.cancel()

        yield SessionEvent(
            SessionEventType.TOOL_EXECUTION_END,
            {"tool_call_id": tool_call_id, "output": result.output, "is_error": result.is_error},
        )
        tool_result: Dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": tool_call_id,
            "content": result.output,
        }
        if result.is_error:
            tool_result["is_error"] = True
        yield tool_result

    @staticmethod
    def _tool_update(tool_call_id: str, text: str) -> SessionEvent:
        return SessionEvent(SessionEventType.TOOL_EXECUTION_UPDATE, {"tool_call_id": tool_call_id, "text": text})

    async def _compact(self) -> str:
        """Replace the history with a model-written summary."""
        logger.info("Compacting conversation", messages=len(self._history), input_tokens=self._last_input_tokens)
        response = await self._get_client().messages.create(
            model=self._model_id,
            max_tokens=min(self._max_tokens, 4096),
            system=self._system_prompt or anthropic.NOT_GIVEN,
            messages=self._history + [{"role": "user", "content": COMPACTION_PROMPT}],
        )
        summary = "".join(block.text for block in response.content if block.type == "text")

        self._history = [
            {"role": "user", "content": f"Summary of the work so far:\n\n{summary}"},
            {"role": "assistant", "content": [{"type": "text", "text": "Understood. Continuing from the summary."}]},
        ]
        if self._store is not None:
            self._store.replace_messages(self._transcript_id, self._history)
        self._last_input_tokens = 0
        return summary
