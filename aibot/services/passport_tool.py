# aibot/services/passport_tool.py

from pathlib import Path
from typing import Optional
import asyncio
import base64
import json
import logging

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_core.tools import StructuredTool
from pydantic import ValidationError

from aibot.core.exceptions import SchemaValidationError
from aibot.data_schemas import Passport
from aibot.services.prompts import (
    DEFAULT_IMAGE_MIME_TYPE,
    PASSPORT_EXTRACTION_PROMPT,
    message_text,
)

logger = logging.getLogger(__name__)


class PassportExtractorTool:
    """Extracts passport fields from an image using the vision model"""

    name = "extractPassportInfo"
    description = (
        "Extracts passport information from an image file. Pass the file path where the "
        "passport image is stored and the mime type. Returns passport information in JSON "
        "format with fields: passport_no, name, birthdate, gender, nationality, issue_date, "
        "expiry_date."
    )

    def __init__(self, vision_llm: BaseChatModel):
        self.vision_llm = vision_llm

    async def describe_image(self, prompt: str, image_base64: str, mime_type: str) -> str:
        """Send a prompt plus one base64 image to the vision model"""
        message = HumanMessage(
            content=[
                {"type": "text", "text": prompt},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type};base64,{image_base64}"},
                },
            ]
        )
        response = await self.vision_llm.ainvoke([message])
        text = message_text(response.content)
        logger.debug(f"Vision model response text: {text}")
        return text

    @staticmethod
    def parse_passport(response: Optional[str]) -> Passport:
        """Strip Markdown fences and validate the reply against the Passport schema"""
        clean = (response or "{}").strip()
        if clean.startswith("```json"):
            clean = clean[len("```json"):]
        elif clean.startswith("```"):
            clean = clean[len("```"):]
        if clean.endswith("```"):
            clean = clean[: -len("```")]
        clean = clean.strip()

        try:
            data = json.loads(clean)
        except json.JSONDecodeError as e:
            raise SchemaValidationError(f"Model output is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise SchemaValidationError("Model output is not a JSON object")

        try:
            return Passport.model_validate(data)
        except ValidationError as e:
            raise SchemaValidationError(
                f"Model output does not match the passport schema: {e}"
            ) from e

    async def extract(self, file_path: str, mime_type: Optional[str] = None) -> str:
        """Return the passport record as JSON, or an {"error": ...} payload. Never raises."""
        logger.info(
            f"Tool called: {self.name} with filePath={file_path}, mimeType={mime_type}"
        )
        try:
            file_bytes = await asyncio.to_thread(Path(file_path).read_bytes)
            logger.info(f"File read successfully, size: {len(file_bytes)} bytes")
            image_base64 = base64.b64encode(file_bytes).decode("ascii")

            response = await self.describe_image(
                PASSPORT_EXTRACTION_PROMPT,
                image_base64,
                mime_type or DEFAULT_IMAGE_MIME_TYPE,
            )
            passport = self.parse_passport(response)
            logger.info(f"Passport extraction completed successfully: {passport.name}")
            return passport.model_dump_json(indent=2)
        except Exception as e:
            logger.error(f"Error extracting passport information: {e}", exc_info=True)
            return json.dumps(
                {"error": f"Failed to extract passport information: {e}"}
            )

    def as_tool(self) -> StructuredTool:
        """Wrap extract() as a LangChain tool the chat model can call"""
        return StructuredTool.from_function(
            coroutine=self.extract,
            name=self.name,
            description=self.description,
        )
