"""Image generation through the Gemini API.

This module wraps :mod:`google.genai` behind a small, synchronous interface
used by the run executor and the one-off ``POST /api/generate`` endpoint.

Request Shape
-------------
Each call sends a single user turn.  Reference images come first as inline
image parts, followed by the text prompt::

    [image part] [image part] ... [text prompt]

The response may contain any mix of text and inline image parts.  Images are
collected in order; text parts are concatenated.

Failure Handling
----------------
:meth:`GeminiImageClient.generate` never raises for API problems.  A missing
API key, a transport/API error, a blocked prompt, or a text-only answer all
produce a :class:`GenerationResult` with ``success=False`` and a readable
``error``, which the executor records against the failing step.

Usage
-----
::

    client = GeminiImageClient(api_key="...", default_model="gemini-2.5-flash-image")
    result = client.generate(
        prompt="Place the faucet on a marble vanity",
        reference_images=[GeneratedImage(data=png_bytes, mime_type="image/png")],
        aspect_ratio="4:3",
    )
    if result.success:
        first = result.images[0]
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from google import genai
from google.genai import types

from studiolab.core.constants import DEFAULT_MODEL, IMAGE_SIZE_MODELS

logger = logging.getLogger(__name__)

MISSING_KEY_ERROR = "GEMINI_API_KEY is not configured"
NO_IMAGE_ERROR = "No image was generated. The model may have returned text only."


@dataclass
class GeneratedImage:
    """Raw image bytes with their MIME type."""

    data: bytes
    mime_type: str = "image/png"

    def to_base64(self) -> str:
        """Return the image bytes as a base64 string."""
        return base64.b64encode(self.data).decode("ascii")


@dataclass
class GenerationResult:
    """Outcome of one generation call.

    Attributes:
        success: True when at least one image was produced
        images: Generated images in response order
        text: Concatenated text parts of the response
        error: Human-readable failure reason when ``success`` is False
    """

    success: bool
    images: list[GeneratedImage] = field(default_factory=list)
    text: str = ""
    error: str | None = None


class GeminiImageClient:
    """Synchronous image generation client for Gemini image models."""

    def __init__(
        self,
        api_key: str | None,
        default_model: str = DEFAULT_MODEL,
        client: genai.Client | None = None,
    ) -> None:
        """Create the client.

        Args:
            api_key: Gemini API key.  ``None`` leaves the client unconfigured;
                every call then fails with :data:`MISSING_KEY_ERROR`.
            default_model: Model used when a call does not name one
            client: Pre-built ``genai.Client`` (mainly for tests)
        """
        self.default_model = default_model
        if client is not None:
            self._client = client
        elif api_key:
            self._client = genai.Client(api_key=api_key)
        else:
            logger.warning("GEMINI_API_KEY is not set; image generation is disabled.")
            self._client = None

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def _build_config(
        self,
        model: str,
        aspect_ratio: str,
        image_size: str,
        temperature: float | None,
    ) -> types.GenerateContentConfig:
        # Only some models accept an explicit output size.
        image_config = types.ImageConfig(
            aspect_ratio=aspect_ratio,
            image_size=image_size if model in IMAGE_SIZE_MODELS else None,
        )
        return types.GenerateContentConfig(
            response_modalities=["TEXT", "IMAGE"],
            temperature=temperature,
            image_config=image_config,
        )

    def generate(
        self,
        prompt: str,
        reference_images: Sequence[GeneratedImage] = (),
        model: str | None = None,
        aspect_ratio: str = "1:1",
        image_size: str = "1K",
        temperature: float | None = None,
    ) -> GenerationResult:
        """Generate image(s) from a prompt and optional reference images.

        Args:
            prompt: Text instruction
            reference_images: Images sent ahead of the prompt
            model: Model id; defaults to ``default_model``
            aspect_ratio: Requested aspect ratio, e.g. ``"16:9"``
            image_size: ``"1K"`` or ``"2K"`` (sent only to models supporting it)
            temperature: Sampling temperature, or ``None`` for the model default

        Returns:
            :class:`GenerationResult` describing the images or the failure
        """
        if self._client is None:
            return GenerationResult(success=False, error=MISSING_KEY_ERROR)

        model = model or self.default_model
        parts = [
            types.Part.from_bytes(data=image.data, mime_type=image.mime_type)
            for image in reference_images
        ]
        parts.append(types.Part.from_text(text=prompt))

        logger.info(
            "Generating with %s (%d reference images, aspect=%s)",
            model,
            len(reference_images),
            aspect_ratio,
        )

        try:
            response = self._client.models.generate_content(
                model=model,
                contents=[types.Content(role="user", parts=parts)],
                config=self._build_config(model, aspect_ratio, image_size, temperature),
            )
        except Exception as e:
            logger.error(f"Gemini request failed: {e}")
            return GenerationResult(success=False, error=str(e) or "Unknown error occurred")

        return self._parse_response(response)

    @staticmethod
    def _parse_response(response) -> GenerationResult:
        """Extract images and text from the first response candidate."""
        candidates = response.candidates or []
        if not candidates:
            feedback = getattr(response, "prompt_feedback", None)
            error = f"No candidates returned: {feedback}" if feedback else NO_IMAGE_ERROR
            return GenerationResult(success=False, error=error)

        candidate = candidates[0]
        if candidate.content is None or not candidate.content.parts:
            reason = getattr(candidate, "finish_reason", None)
            error = f"Generation blocked: {reason}" if reason else NO_IMAGE_ERROR
            return GenerationResult(success=False, error=error)

        images: list[GeneratedImage] = []
        text = ""
        for part in candidate.content.parts:
            if part.inline_data is not None and part.inline_data.data:
                data = part.inline_data.data
                # Older SDK versions hand back base64 text instead of bytes.
                if isinstance(data, str):
                    data = base64.b64decode(data)
                images.append(
                    GeneratedImage(data=data, mime_type=part.inline_data.mime_type or "image/png")
                )
            elif part.text:
                text += part.text

        if not images:
            return GenerationResult(success=False, text=text, error=NO_IMAGE_ERROR)
        return GenerationResult(success=True, images=images, text=text)

    def generate_chain(
        self,
        steps: Sequence[dict],
        initial_images: Sequence[GeneratedImage] = (),
    ) -> list[GenerationResult]:
        """Run prompt steps in order without persisting anything.

        Each step receives the previous step's images as references.  The
        chain stops after the first failing step.

        Args:
            steps: Dicts with ``prompt`` and optional ``model``,
                ``aspect_ratio``, ``image_size``, and ``temperature``
            initial_images: References for the first step

        Returns:
            One result per attempted step
        """
        results: list[GenerationResult] = []
        current = list(initial_images)
        for step in steps:
            result = self.generate(
                prompt=step["prompt"],
                reference_images=current,
                model=step.get("model"),
                aspect_ratio=step.get("aspect_ratio", "1:1"),
                image_size=step.get("image_size", "1K"),
                temperature=step.get("temperature"),
            )
            results.append(result)
            if not result.success:
                break
            current = result.images
        return results
