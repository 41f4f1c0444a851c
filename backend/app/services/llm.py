"""
Thin chat wrapper (LlmChat, UserMessage) over the official google-generativeai SDK.
"""

import asyncio

import google.generativeai as genai


class UserMessage:
    """A single text message."""

    def __init__(self, text: str = ""):
        self.text = text

    def to_genai_parts(self) -> list:
        return [self.text] if self.text else []


class LlmChat:
    """
    Supports the chaining API:
        chat = LlmChat(api_key=..., session_id=..., system_message=...)
            .with_model("gemini", "gemini-2.5-flash")
            .with_params(temperature=0)

    send_message() is async and returns the raw SDK response.
    """

    def __init__(self, api_key: str = "", session_id: str = "", system_message: str = ""):
        self._api_key = api_key
        self._session_id = session_id
        self._system_message = system_message
        self._model_name = "gemini-2.5-flash"
        self._temperature = None
        self._chat = None  # lazily created

    def with_model(self, provider: str, model_name: str) -> "LlmChat":
        """Set the model. Provider is ignored (always Gemini)."""
        self._model_name = model_name
        return self

    def with_params(self, temperature: float = None, **kwargs) -> "LlmChat":
        """Set generation parameters."""
        if temperature is not None:
            self._temperature = temperature
        return self

    def _ensure_chat(self):
        """Lazily create the underlying genai chat session."""
        if self._chat is None:
            if self._api_key:
                genai.configure(api_key=self._api_key)
            gen_config = {}
            if self._temperature is not None:
                gen_config["temperature"] = self._temperature

            model = genai.GenerativeModel(
                model_name=self._model_name,
                system_instruction=self._system_message if self._system_message else None,
                generation_config=gen_config if gen_config else None,
            )
            self._chat = model.start_chat(history=[])

    async def send_message(self, message: UserMessage):
        """
        Send a message and return the SDK response.
        The synchronous genai call runs in a worker thread.
        """
        self._ensure_chat()
        parts = message.to_genai_parts()
        return await asyncio.to_thread(self._chat.send_message, parts)
