"""Structured extraction of medicines, diagnosis and notes from a prescription image."""

import base64
import binascii
import logging
import re

from ayurmed.exceptions import ExtractionError, ValidationInputError
from ayurmed.models.prescription import ExtractionResult
from ayurmed.services.llm import ImageInput, LLMClient, get_llm_client

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert medical transcriptionist for Indian prescriptions.

Your task: read a photo or scan of a prescription (handwritten or printed) and extract it as structured data.

Rules:
- medicines: one entry per drug with name, dosage (e.g. "500mg"), frequency (e.g. "1-0-1" for
  morning-afternoon-night, or "Twice daily"), duration (e.g. "5 days") and instructions (e.g. "After food").
- diagnosis: any diagnosis mentioned.
- notes: any additional doctor notes.
- If a field is illegible, make a best guess or use an empty string. Never use null and never omit a field.

You must respond with ONLY a single JSON object that matches this schema. No markdown, no explanation, only the JSON."""

USER_PROMPT = "Extract the medicines, diagnosis and notes from this prescription image."

_DATA_URL_RE = re.compile(r"^data:(?P<media_type>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?;base64,(?P<data>.*)$", re.DOTALL)


def is_embedded_image(image_url: str | None) -> bool:
    return bool(image_url) and image_url.startswith("data:")


def decode_data_url(image_url: str) -> ImageInput:
    """Split a ``data:<type>;base64,<payload>`` URL into raw bytes and media type."""
    match = _DATA_URL_RE.match(image_url.strip())
    if not match:
        raise ValidationInputError("Image must be a base64 data URL")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationInputError("Image data is not valid base64") from None
    if not data:
        raise ValidationInputError("Image data is empty")
    return ImageInput(data=data, media_type=match.group("media_type") or "image/jpeg")


async def parse_prescription_image(
    image_bytes: bytes,
    media_type: str = "image/jpeg",
    client: LLMClient | None = None,
) -> ExtractionResult:
    """Run the extraction model on raw image bytes.

    Raises ConfigurationError if no AI provider is configured, and
    ExtractionError if the model fails or returns anything other than a
    complete ExtractionResult.
    """
    if not image_bytes:
        raise ExtractionError("No image data to extract from")
    client = client or get_llm_client()
    result = await client.generate_json(
        system=SYSTEM_PROMPT,
        user=USER_PROMPT,
        response_model=ExtractionResult,
        image=ImageInput(data=image_bytes, media_type=media_type),
        max_tokens=4096,
    )
    logger.info("Extracted %d medicines from prescription image", len(result.medicines))
    return result
