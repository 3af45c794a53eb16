"""
Tests for OpenAI <-> Ollama conversion.
"""

import time

from ollama2openai.models.ollama import OllamaChatResponse, OllamaModelInfo
from ollama2openai.models.schemas import ChatCompletionRequest, ResponseRequest
from ollama2openai.utils import converter


def chat_request(**kwargs) -> ChatCompletionRequest:
    data = {"model": "llama3", "messages": [{"role": "user", "content": "hi"}]}
    data.update(kwargs)
    return ChatCompletionRequest(**data)


class TestToOllamaChatRequest:
    """Tests for chat request conversion."""

    def test_preserves_order_and_roles(self):
        request = chat_request(messages=[
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi there"},
            {"role": "user", "content": "bye"},
        ])

        result = converter.to_ollama_chat_request(request)

        assert [m.role for m in result.messages] == ["system", "user", "assistant", "user"]
        assert [m.content for m in result.messages] == ["be brief", "hello", "hi there", "bye"]
        assert all(m.images is None for m in result.messages)

    def test_text_and_image_parts(self):
        request = chat_request(messages=[{
            "role": "user",
            "content": [
                {"type": "text", "text": "hello"},
                {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
            ],
        }])

        message = converter.to_ollama_chat_request(request).messages[0]

        assert message.content == "hello"
        assert message.images == ["AAAA"]

    def test_text_parts_are_concatenated_without_separator(self):
        request = chat_request(messages=[{
            "role": "user",
            "content": [{"type": "text", "text": "foo"}, {"type": "text", "text": "bar"}],
        }])

        assert converter.to_ollama_chat_request(request).messages[0].content == "foobar"

    def test_malformed_and_remote_images_are_dropped(self):
        request = chat_request(messages=[{
            "role": "user",
            "content": [
                {"type": "text", "text": "look"},
                {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
                {"type": "image_url", "image_url": {"url": "data:image/png;base64,AA,BB"}},
                {"type": "image_url", "image_url": {"url": "data:image/png;base64"}},
                {"type": "audio", "data": "xyz"},
            ],
        }])

        message = converter.to_ollama_chat_request(request).messages[0]

        assert message.content == "look"
        assert message.images is None

    def test_string_image_url_is_accepted(self):
        request = chat_request(messages=[{
            "role": "user",
            "content": [{"type": "image_url", "image_url": "data:image/jpeg;base64,QUJD"}],
        }])

        assert converter.to_ollama_chat_request(request).messages[0].images == ["QUJD"]

    def test_parts_without_usable_type_are_skipped(self):
        request = chat_request(messages=[{
            "role": "user",
            "content": [
                "bare string",
                {"text": "no type"},
                {"type": 7, "text": "numeric type"},
                {"type": "text", "text": 5},
                {"type": "image_url", "image_url": {"detail": "high"}},
                {"type": "text", "text": "ok"},
            ],
        }])

        message = converter.to_ollama_chat_request(request).messages[0]

        assert message.content == "ok"
        assert message.images is None

    def test_response_input_parts_without_type_are_skipped(self):
        request = ResponseRequest(input=[
            {"role": "user", "content": [{"text": "no type"}, {"type": "input_text", "text": "kept"}]},
        ])

        chat = converter.response_request_to_chat_request(request)

        assert converter.to_ollama_chat_request(chat).messages[0].content == "kept"

    def test_options_only_contain_present_fields(self):
        request = chat_request(temperature=0.2, max_tokens=64)

        result = converter.to_ollama_chat_request(request)

        assert result.options == {"temperature": 0.2, "num_predict": 64}

    def test_no_options_are_omitted_from_payload(self):
        payload = converter.to_ollama_chat_request(chat_request()).to_payload()

        assert "options" not in payload
        assert payload["stream"] is False
        assert payload["messages"] == [{"role": "user", "content": "hi"}]


class TestResponses:
    """Tests for Ollama -> OpenAI response conversion."""

    def test_chat_completion_response(self):
        unit = OllamaChatResponse(message={"role": "assistant", "content": "Hello"}, done=True)

        response = converter.to_chat_completion_response(unit, "llama3", 10, 2)

        assert response.id.startswith("chatcmpl-")
        assert response.object == "chat.completion"
        assert response.model == "llama3"
        assert response.choices[0].message.content == "Hello"
        assert response.choices[0].finish_reason == "stop"
        assert response.usage.total_tokens == 12

    def test_stream_chunk_finish_reason(self):
        partial = OllamaChatResponse(message={"role": "assistant", "content": "Hi"}, done=False)
        final = OllamaChatResponse(message={"role": "assistant", "content": ""}, done=True)

        first = converter.to_stream_chunk(partial, "llama3", "chatcmpl-1", 100)
        last = converter.to_stream_chunk(final, "llama3", "chatcmpl-1", 100)

        assert first.object == "chat.completion.chunk"
        assert first.choices[0].delta.content == "Hi"
        assert first.choices[0].finish_reason == ""
        assert last.choices[0].finish_reason == "stop"
        assert first.id == last.id == "chatcmpl-1"

    def test_model_info(self):
        info = converter.to_model_info(OllamaModelInfo(
            name="llama3:latest",
            modified_at="2024-05-01T12:00:00.123456789-07:00",
        ))

        assert info.id == "llama3:latest"
        assert info.owned_by == "ollama"
        assert info.created == 1714590000


class TestParseTimestamp:
    """Tests for RFC3339 timestamp parsing."""

    def test_utc(self):
        assert converter.parse_timestamp("2024-05-01T00:00:00Z") == 1714521600

    def test_nanosecond_fraction(self):
        assert converter.parse_timestamp("2024-05-01T00:00:00.999999999Z") == 1714521600

    def test_invalid_falls_back_to_now(self):
        now = int(time.time())
        assert abs(converter.parse_timestamp("not a date") - now) <= 5
        assert abs(converter.parse_timestamp("") - now) <= 5


class TestResponseRequest:
    """Tests for Response API request rewriting."""

    def test_string_input_with_instructions(self):
        request = ResponseRequest(
            model="llama3",
            input="hello",
            instructions="be brief",
            max_output_tokens=32,
        )

        chat = converter.response_request_to_chat_request(request)

        assert [(m.role, m.content) for m in chat.messages] == [
            ("system", "be brief"),
            ("user", "hello"),
        ]
        assert chat.max_tokens == 32
        assert chat.model == "llama3"

    def test_list_input_skips_items_without_content(self):
        request = ResponseRequest(input=[
            {"role": "user", "content": "first"},
            {"role": "assistant"},
            {"content": [{"type": "input_text", "text": "second"}]},
        ])

        chat = converter.response_request_to_chat_request(request)
        ollama = converter.to_ollama_chat_request(chat)

        assert [m.role for m in ollama.messages] == ["user", "user"]
        assert [m.content for m in ollama.messages] == ["first", "second"]

    def test_response_object(self):
        unit = OllamaChatResponse(message={"role": "assistant", "content": "Hello"}, done=True)
        chat_response = converter.to_chat_completion_response(unit, "llama3", 5, 1)

        response = converter.to_response_object(chat_response)

        assert response.id.startswith("resp_")
        assert response.object == "response"
        assert response.output[0].content[0].text == "Hello"
        assert response.usage.total_tokens == 6
