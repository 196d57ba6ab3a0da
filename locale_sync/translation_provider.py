"""OpenAI-backed translation of locale trees."""
import json
import logging
import re
from typing import Any, Dict, Mapping, Optional

import jsonschema
import tiktoken
from aiolimiter import AsyncLimiter
from openai import APIConnectionError, APIStatusError, AsyncOpenAI, OpenAIError
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from locale_sync.translation_validator import check_tree_placeholders, find_placeholders

logger = logging.getLogger(__name__)

OPERATION = 'chat.completions.create'

_JSON_TYPES = {bool: 'boolean', int: 'number', float: 'number', type(None): 'null', list: 'array'}


class ProviderError(Exception):
    """The translation provider could not produce a usable translation."""


class ProviderResponseError(ProviderError):
    """The provider answered, but the answer is not a valid translation of the request."""


class ProviderConnectionError(ProviderError):
    """The provider could not be reached."""

    def __init__(self, host: str, operation: str, message: Optional[str] = None):
        self.host = host
        self.operation = operation
        super().__init__(
            message or f"Error connecting to {host} ({operation}). Are you connected to the internet?"
        )


def build_response_schema(tree: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Build the JSON schema a translation of ``tree`` must satisfy.

    Every object requires exactly the keys of the request. String leaves must
    stay strings, and a leaf holding placeholders must keep each of them.
    """
    return {
        "type": "object",
        "properties": {key: _leaf_schema(value) for key, value in tree.items()},
        "required": list(tree.keys()),
        "additionalProperties": False
    }


def _leaf_schema(value: Any) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        return build_response_schema(value)
    if isinstance(value, str):
        placeholders = dict.fromkeys(find_placeholders(value))
        if not placeholders:
            return {"type": "string"}
        tokens = [re.escape('{' + name + '}') for name in placeholders]
        lookaheads = ''.join(r"(?=[\s\S]*" + token + ")" for token in tokens)
        return {"type": "string", "pattern": f"^{lookaheads}"}
    json_type = _JSON_TYPES.get(type(value))
    if json_type is None:
        return {}
    # Scalars may legitimately come back as their string rendering
    return {"type": [json_type, "string"]}


def count_tokens(text: str, model_name: str) -> int:
    """Count the tokens of ``text`` for ``model_name``, falling back to ``gpt2`` then to a word count."""
    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            encoding = tiktoken.get_encoding("gpt2")
        except Exception:
            return len(text.split())
    return len(encoding.encode(text))


def _build_system_prompt(locale: str, default_locale: str, custom_prompt: Optional[str]) -> str:
    prompt = f"""
You are a professional translator with proven experience in software localization.
Translate the values of the JSON object given by the user from {default_locale} to the {locale} locale.
The translations will be used for a website in {locale}.

**Instructions**:
- Translate only the values. Keep every key exactly as it is, including nested keys.
- Return a JSON object with exactly the same structure and keys as the input.
- **Do not translate or modify placeholder tokens**: text enclosed in single braces (e.g. `{{name}}`) must stay exactly as is.
- Translate job titles and industry-specific terms accurately for the {locale} locale.
- Output the JSON object only, without explanations or markdown.
"""
    if custom_prompt:
        prompt += f"\n**Additional instructions**:\n{custom_prompt}\n"
    return prompt


class OpenAITranslationProvider:
    """
    Translates locale trees with the OpenAI chat completions API.

    One call per request, no retries. The answer is accepted only if it is a
    JSON object with the request's shape and placeholders.
    """

    def __init__(
            self,
            client: AsyncOpenAI,
            model_name: str,
            rate_limiter: Optional[AsyncLimiter] = None,
            max_model_tokens: int = 16000
    ):
        self._client = client
        self._model_name = model_name
        self._rate_limiter = rate_limiter or AsyncLimiter(max_rate=60, time_period=60)
        self._max_model_tokens = max_model_tokens

    @property
    def host(self) -> str:
        try:
            return self._client.base_url.host
        except AttributeError:
            return 'api.openai.com'

    async def translate(
            self,
            locale: str,
            tree: Mapping[str, Any],
            default_locale: str,
            custom_prompt: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Translate ``tree`` into ``locale``.

        Raises:
            ProviderConnectionError: The API could not be reached.
            ProviderResponseError: The answer is not JSON or does not match the request.
            ProviderError: Any other API failure, or a request too large for the token budget.
        """
        system_prompt = _build_system_prompt(locale, default_locale, custom_prompt)
        content = json.dumps(tree, ensure_ascii=False)

        token_count = count_tokens(system_prompt + content, self._model_name)
        if token_count > self._max_model_tokens:
            raise ProviderError(
                f"The content to translate is too large for the model ({token_count} > {self._max_model_tokens} tokens)."
            )

        async with self._rate_limiter:
            try:
                response = await self._client.chat.completions.create(
                    model=self._model_name,
                    messages=[
                        ChatCompletionSystemMessageParam(role="system", content=system_prompt),
                        ChatCompletionUserMessageParam(role="user", content=f"Here is the JSON to translate:\n{content}")
                    ],
                    temperature=0.3,
                    response_format={"type": "json_object"},
                )
            except APIConnectionError as api_exc:
                raise ProviderConnectionError(self.host, OPERATION) from api_exc
            except APIStatusError as api_exc:
                raise ProviderError(f"OpenAI API Error: {api_exc.status_code} - {api_exc.message}") from api_exc
            except OpenAIError as api_exc:
                raise ProviderError(f"OpenAI API Error: {api_exc}") from api_exc

        response_text = (response.choices[0].message.content or '').strip() if response.choices else ''
        if not response_text:
            raise ProviderResponseError("The OpenAI API returned an empty response.")

        return self._parse_response(response_text, tree)

    def _parse_response(self, response_text: str, tree: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            generated = json.loads(response_text)
        except json.JSONDecodeError as json_exc:
            logger.debug("Invalid provider response:\n---\n%s\n---", response_text)
            raise ProviderResponseError("The OpenAI API returned invalid JSON.") from json_exc

        try:
            jsonschema.validate(instance=generated, schema=build_response_schema(tree))
        except jsonschema.ValidationError as schema_exc:
            location = '.'.join(str(part) for part in schema_exc.absolute_path) or '<root>'
            raise ProviderResponseError(
                f"The OpenAI API response does not match the requested keys at '{location}': {schema_exc.message}"
            ) from schema_exc

        mismatches = check_tree_placeholders(tree, generated)
        if mismatches:
            raise ProviderResponseError(f"Placeholders were altered for key(s): {', '.join(mismatches)}")

        return generated
