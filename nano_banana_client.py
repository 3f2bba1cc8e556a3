#!/usr/bin/env python3
"""
Nano Banana CLI
===============
A command-line client that sends prompts to the Google Generative Language
API and prints the generated text or saves the generated image.

Usage:
    nano-banana-cli text "write a haiku about bananas"
    nano-banana-cli image "a banana wearing sunglasses" --output banana.png
    nano-banana-cli image "a banana spaceship" --model nano-banana-1

The API key is taken from --api-key, then the GOOGLE_AI_STUDIO_API_KEY
environment variable, then the external secrets tool.

Requirements:
    pip install -e .
"""

import argparse
import base64
import binascii
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import requests
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError


logger = logging.getLogger("nano_banana")


# ============================================================================
# CONFIGURATION
# ============================================================================

API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
API_KEY_ENV_VAR = "GOOGLE_AI_STUDIO_API_KEY"
SECRET_NAME = "GOOGLE_AI_STUDIO_API_KEY"
SECRETS_TOOL_ENV_VAR = "NANO_BANANA_SECRETS_TOOL"
DEFAULT_SECRETS_TOOL = "doppler"

TEXT_MODEL = "gemini-2.0-flash"
IMAGE_MODELS = {
    "nano-banana-1": "gemini-2.5-flash-image",
    "nano-banana-2": "gemini-3-pro-image-preview",
}
DEFAULT_IMAGE_MODEL = "nano-banana-2"
RESPONSE_MODALITIES = ["TEXT", "IMAGE"]

DEFAULT_OUTPUT = "output.png"


# ============================================================================
# CUSTOM EXCEPTIONS
# ============================================================================

class NanoBananaError(Exception):
    """Base exception for all CLI failures"""
    pass


class CredentialError(NanoBananaError):
    """No API key could be resolved"""
    pass


class TransportError(NanoBananaError):
    """The HTTP request failed or returned a non-2xx status"""
    pass


class DeserializationError(NanoBananaError):
    """The response body is not JSON or has an unexpected shape"""
    pass


class NoTextDataError(NanoBananaError):
    """The first candidate part carries no text"""
    pass


class NoImageDataError(NanoBananaError):
    """No candidate part carries inline image data"""
    pass


class DecodeError(NanoBananaError):
    """Inline image data is not valid base64"""
    pass


class FileWriteError(NanoBananaError):
    """The output file could not be written"""
    pass


class UnknownModelError(NanoBananaError):
    """The requested image model variant does not exist"""
    pass


# ============================================================================
# CREDENTIALS
# ============================================================================

SecretProvider = Callable[[], Optional[str]]


def explicit_provider(value: Optional[str]) -> SecretProvider:
    """Provider returning a value given on the command line."""
    return lambda: value or None


def env_provider(name: str = API_KEY_ENV_VAR) -> SecretProvider:
    """Provider reading an environment variable at call time."""
    return lambda: os.environ.get(name) or None


def command_provider(
    tool: Optional[str] = None,
    secret_name: str = SECRET_NAME
) -> SecretProvider:
    """
    Provider that asks an external secrets manager for the key.

    Runs ``<tool> secrets get <secret_name>`` and returns its trimmed
    standard output.

    Args:
        tool: Executable to run. Defaults to $NANO_BANANA_SECRETS_TOOL,
            then ``doppler``.
        secret_name: Name of the secret to request

    Returns:
        A zero-argument callable

    Raises:
        CredentialError: When called, if the tool cannot be launched,
            exits non-zero or prints nothing
    """
    def lookup() -> str:
        executable = tool or os.environ.get(SECRETS_TOOL_ENV_VAR) or DEFAULT_SECRETS_TOOL
        command = [executable, "secrets", "get", secret_name]
        logger.debug("Looking up %s with %s", secret_name, executable)

        try:
            result = subprocess.run(command, capture_output=True, text=True)
        except OSError as e:
            raise CredentialError(
                f"Failed to run secrets tool '{executable}': {e}"
            ) from e

        if result.returncode != 0:
            raise CredentialError(
                f"Secrets tool '{executable}' exited with status "
                f"{result.returncode}: {result.stderr.strip()}"
            )

        secret = result.stdout.strip()
        if not secret:
            raise CredentialError(
                f"Secrets tool '{executable}' returned an empty value for {secret_name}"
            )
        return secret

    return lookup


def resolve_secret(providers: Sequence[SecretProvider]) -> str:
    """
    Try each provider in order and return the first value found.

    Raises:
        CredentialError: If no provider yields a value
    """
    for provider in providers:
        value = provider()
        if value:
            return value
    raise CredentialError(
        f"No API key found. Pass --api-key or set {API_KEY_ENV_VAR}"
    )


def resolve_api_key(explicit_key: Optional[str] = None) -> str:
    """
    Resolve the API key: explicit value, environment variable, secrets tool.

    The first source that yields a non-empty value wins. Later sources are
    not consulted, so the secrets tool only runs when both others are empty.

    Args:
        explicit_key: Key from --api-key or GOOGLE_AI_STUDIO_API_KEY

    Returns:
        A non-empty API key

    Raises:
        CredentialError: If the secrets tool fails
    """
    return resolve_secret([
        explicit_provider(explicit_key),
        env_provider(),
        command_provider(),
    ])


# ============================================================================
# REQUEST BUILDING
# ============================================================================

def build_text_request(prompt: str) -> Dict[str, Any]:
    """Body for a plain text generation: one content with one text part."""
    return {
        "contents": [
            {"parts": [{"text": prompt}]}
        ]
    }


def build_image_request(prompt: str) -> Dict[str, Any]:
    """Text request plus a generationConfig asking for TEXT and IMAGE output."""
    payload = build_text_request(prompt)
    payload["generationConfig"] = {
        "responseModalities": list(RESPONSE_MODALITIES)
    }
    return payload


def resolve_image_model(name: Optional[str] = None) -> str:
    """
    Map a --model choice to the upstream model id.

    Args:
        name: One of IMAGE_MODELS, or None for the default

    Returns:
        The model id used in the request path

    Raises:
        UnknownModelError: If name is not a known variant
    """
    name = name or DEFAULT_IMAGE_MODEL
    try:
        return IMAGE_MODELS[name]
    except KeyError:
        raise UnknownModelError(
            f"Unknown image model '{name}'. Choose from: {', '.join(IMAGE_MODELS)}"
        ) from None


def build_url(model: str, api_key: str, base_url: str = API_BASE_URL) -> str:
    """Full generateContent URL with the key in the query string."""
    return f"{base_url.rstrip('/')}/models/{model}:generateContent?key={api_key}"


def _redact(url: str) -> str:
    head, sep, _ = url.partition("key=")
    return f"{head}{sep}***" if sep else url


# ============================================================================
# RESPONSE MODEL
# ============================================================================

class InlineData(BaseModel):
    """Base64 payload embedded in a response part."""
    model_config = ConfigDict(populate_by_name=True)

    mime_type: str = Field(alias="mimeType")
    data: str


class Part(BaseModel):
    """One fragment of a candidate: text, inline data, or neither."""
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    inline_data: Optional[InlineData] = Field(default=None, alias="inlineData")


class CandidateContent(BaseModel):
    """Ordered parts of one candidate."""
    parts: List[Part] = Field(default_factory=list)


class Candidate(BaseModel):
    """One proposed response from the model."""
    content: CandidateContent = Field(default_factory=CandidateContent)


class GenerateContentResponse(BaseModel):
    """Top-level generateContent response body."""
    candidates: List[Candidate] = Field(default_factory=list)


def parse_response(data: Any) -> GenerateContentResponse:
    """
    Validate a decoded JSON body against the response model.

    Raises:
        DeserializationError: If the body does not match the expected shape
    """
    try:
        return GenerateContentResponse.model_validate(data)
    except ValidationError as e:
        raise DeserializationError(f"Unexpected response shape: {e}") from e


# ============================================================================
# CLIENT CLASS
# ============================================================================

class GeminiClient:
    """
    Client for the generateContent endpoint.

    Sends exactly one POST per call. There is no retry loop and no timeout
    beyond what ``requests`` does by default unless one is passed in.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = API_BASE_URL,
        timeout: Optional[float] = None
    ):
        """
        Initialize the client.

        Args:
            api_key: Google AI Studio API key
            base_url: API root, without the /models suffix
            timeout: Request timeout in seconds, None for no timeout
        """
        if not api_key:
            raise CredentialError("API key is required")

        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._session = requests.Session()

    def generate_content(
        self,
        model: str,
        payload: Dict[str, Any]
    ) -> GenerateContentResponse:
        """
        POST a request body to ``models/<model>:generateContent``.

        Args:
            model: Upstream model id
            payload: Request body from build_text_request/build_image_request

        Returns:
            The parsed response

        Raises:
            TransportError: On connection failure, timeout or non-2xx status
            DeserializationError: If the body is not valid JSON or has the
                wrong shape
        """
        url = build_url(model, self.api_key, self.base_url)
        logger.debug("POST %s", _redact(url))

        try:
            response = self._session.post(
                url,
                headers={"Content-Type": "application/json"},
                json=payload,
                timeout=self.timeout
            )
        except requests.Timeout as e:
            raise TransportError(f"Request timed out: {self._scrub(e)}") from e
        except requests.ConnectionError as e:
            raise TransportError(f"Failed to connect to API: {self._scrub(e)}") from e
        except requests.RequestException as e:
            raise TransportError(f"Request failed: {self._scrub(e)}") from e

        logger.debug("Response status %s", response.status_code)

        if not 200 <= response.status_code < 300:
            try:
                error_detail = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                error_detail = response.text
            raise TransportError(
                f"API error ({response.status_code}): {self._scrub(error_detail)}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DeserializationError(f"Invalid JSON response: {e}") from e

        return parse_response(data)

    def _scrub(self, detail: Any) -> str:
        """Remove the API key from text that may echo the request URL."""
        return str(detail).replace(self.api_key, "***")

    def close(self) -> None:
        self._session.close()


# ============================================================================
# RESPONSE HANDLING
# ============================================================================

def extract_text(response: GenerateContentResponse) -> str:
    """
    Return the text of the first part of the first candidate.

    Later candidates and parts are ignored.

    Raises:
        NoTextDataError: If that part is missing or has no text
    """
    if response.candidates and response.candidates[0].content.parts:
        text = response.candidates[0].content.parts[0].text
        if text is not None:
            return text
    raise NoTextDataError("No text data in response")


def extract_inline_data(response: GenerateContentResponse) -> InlineData:
    """
    Return the first part, across all candidates, that carries inline data.

    Raises:
        NoImageDataError: If no part has inline data
    """
    for candidate in response.candidates:
        for part in candidate.content.parts:
            if part.inline_data is not None:
                return part.inline_data
    raise NoImageDataError("No image data in response")


def save_image(inline_data: InlineData, output_path: Union[str, Path]) -> Path:
    """
    Decode inline data and write the bytes to output_path.

    An existing file is overwritten. Nothing is written if decoding fails.

    Args:
        inline_data: Payload from extract_inline_data
        output_path: Destination file

    Returns:
        The path written

    Raises:
        DecodeError: If the data is not valid base64
        FileWriteError: If the file cannot be written
    """
    try:
        image_bytes = base64.b64decode(inline_data.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Failed to decode image data: {e}") from e

    path = Path(output_path)
    try:
        path.write_bytes(image_bytes)
    except OSError as e:
        raise FileWriteError(f"Failed to write {path}: {e}") from e

    logger.debug("Wrote %d bytes to %s", len(image_bytes), path)
    return path


def generate_text(client: GeminiClient, prompt: str) -> str:
    """
    Generate text for a prompt with the fixed text model.

    Raises:
        NoTextDataError: If the first part has no text
    """
    response = client.generate_content(TEXT_MODEL, build_text_request(prompt))
    return extract_text(response)


def generate_image(
    client: GeminiClient,
    prompt: str,
    output_path: Union[str, Path] = DEFAULT_OUTPUT,
    model: Optional[str] = None
) -> Tuple[Path, str]:
    """
    Generate an image and save it.

    Returns:
        (path written, mime type reported by the API)
    """
    model_id = resolve_image_model(model)
    response = client.generate_content(model_id, build_image_request(prompt))
    inline_data = extract_inline_data(response)
    path = save_image(inline_data, output_path)
    return path, inline_data.mime_type


# ============================================================================
# CLI INTERFACE
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    """
    Build the command line parser.

    Returns:
        Parser with text and image subcommands
    """
    parser = argparse.ArgumentParser(
        prog="nano-banana-cli",
        description="CLI for Google Gemini text and image generation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
    %(prog)s text "write a haiku about bananas"
    %(prog)s image "a banana wearing sunglasses" -o banana.png

Environment Variables:
    {API_KEY_ENV_VAR}    API key (same as --api-key)
    {SECRETS_TOOL_ENV_VAR}    Secrets tool used when no key is set (default: {DEFAULT_SECRETS_TOOL})
        """
    )

    parser.add_argument(
        "--api-key",
        type=str,
        default=os.environ.get(API_KEY_ENV_VAR),
        help=f"API key. Can also set {API_KEY_ENV_VAR} env var"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log request details to stderr"
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    text_parser = subparsers.add_parser("text", help="Generate text using Gemini")
    text_parser.add_argument(
        "prompt",
        type=str,
        help="The prompt to send to the model"
    )

    image_parser = subparsers.add_parser(
        "image",
        help="Generate an image using Nano Banana"
    )
    image_parser.add_argument(
        "prompt",
        type=str,
        help="The prompt describing the image to generate"
    )
    image_parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path(DEFAULT_OUTPUT),
        help=f"Output file path (default: {DEFAULT_OUTPUT})"
    )
    image_parser.add_argument(
        "--model", "-m",
        choices=sorted(IMAGE_MODELS),
        default=DEFAULT_IMAGE_MODEL,
        help=f"Image model variant (default: {DEFAULT_IMAGE_MODEL})"
    )

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    return build_parser().parse_args(argv)


def run(args: argparse.Namespace) -> None:
    """Execute one parsed command. Errors propagate to main()."""
    api_key = resolve_api_key(args.api_key)
    client = GeminiClient(api_key)

    try:
        if args.command == "text":
            print(generate_text(client, args.prompt))
        else:
            print(f"🎨 Generating with {args.model}...", file=sys.stderr)
            path, mime_type = generate_image(
                client, args.prompt, args.output, args.model
            )
            print(f"Image saved to: {path}")
            print(f"Mime type: {mime_type}")
    finally:
        client.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error, 130 if interrupted)
    """
    load_dotenv(Path.cwd() / ".env")
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )

    try:
        run(args)
        return 0

    except NanoBananaError as e:
        print(f"❌ {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\n⚠️ Interrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
