"""Reading medicine names, dosages and expiry dates off package labels."""
from __future__ import annotations

from dataclasses import asdict, dataclass
import logging
from pathlib import Path
import re
from typing import Any

from PIL import Image, ImageOps, UnidentifiedImageError
import pytesseract

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError

_LOGGER = logging.getLogger(__name__)

OCR_LANGUAGES = "eng+hin"

# (pattern, display name, category)
KNOWN_MEDICINES = [
    (re.compile(r"metformin|मेटफॉर्मिन", re.I), "Metformin", "diabetes"),
    (re.compile(r"glimepiride|ग्लिमेपिराइड", re.I), "Glimepiride", "diabetes"),
    (re.compile(r"insulin|इंसुलिन", re.I), "Insulin", "diabetes"),
    (re.compile(r"amlodipine|एम्लोडिपिन", re.I), "Amlodipine", "bp"),
    (re.compile(r"atenolol|एटेनोलोल", re.I), "Atenolol", "bp"),
    (re.compile(r"losartan|लोसार्टन", re.I), "Losartan", "bp"),
    (re.compile(r"paracetamol|पैरासिटामोल", re.I), "Paracetamol", "pain"),
    (re.compile(r"aspirin|एस्प्रिन", re.I), "Aspirin", "pain"),
    (re.compile(r"ibuprofen|आइबुप्रोफेन", re.I), "Ibuprofen", "pain"),
    (re.compile(r"vitamin\s*d|विटामिन\s*डी", re.I), "Vitamin D", "vitamin"),
    (re.compile(r"vitamin\s*b12|विटामिन\s*बी12", re.I), "Vitamin B12", "vitamin"),
    (re.compile(r"calcium|कैल्शियम", re.I), "Calcium", "vitamin"),
]

DOSAGE_PATTERNS = [
    re.compile(r"(\d+)\s*mg", re.I),
    re.compile(r"(\d+)\s*mcg", re.I),
    re.compile(r"(\d+)\s*iu", re.I),
    re.compile(r"(\d+)\s*ml", re.I),
    re.compile(r"(\d+)\s*tablet", re.I),
    re.compile(r"(\d+)\s*गोली", re.I),
]

EXPIRY_PATTERNS = [
    re.compile(r"exp[iry]*:?\s*(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})", re.I),
    re.compile(r"मियाद:?\s*(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})", re.I),
    re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})", re.I),
]

MANUFACTURER_KEYWORDS = ("pvt", "ltd", "pharma", "pharmaceuticals", "labs")
BATCH_PATTERN = re.compile(r"(?:batch|lot):?\s*([a-z0-9]+)", re.I)


class LabelScanError(HomeAssistantError):
    """The label could not be read."""


@dataclass
class LabelScan:
    """What could be read from a label; each field says whether it matched."""

    text: str
    name: str | None = None
    category: str | None = None
    dosage: str | None = None
    expiry_date: str | None = None
    manufacturer: str | None = None
    batch_number: str | None = None

    @property
    def name_matched(self) -> bool:
        return self.name is not None

    @property
    def dosage_matched(self) -> bool:
        return self.dosage is not None

    @property
    def expiry_matched(self) -> bool:
        return self.expiry_date is not None

    @property
    def confidence(self) -> float:
        return 0.8 if self.name_matched else 0.3

    def as_dict(self) -> dict[str, Any]:
        return {
            **asdict(self),
            "name_matched": self.name_matched,
            "dosage_matched": self.dosage_matched,
            "expiry_matched": self.expiry_matched,
            "confidence": self.confidence,
        }


def _first_match(patterns: list[re.Pattern[str]], text: str) -> re.Match[str] | None:
    for pattern in patterns:
        if match := pattern.search(text):
            return match
    return None


def parse_label_text(text: str) -> LabelScan:
    """Guess medicine details from OCR output."""
    clean = " ".join(text.lower().split())
    scan = LabelScan(text=text)

    for pattern, name, category in KNOWN_MEDICINES:
        if pattern.search(clean):
            scan.name, scan.category = name, category
            break

    if dosage := _first_match(DOSAGE_PATTERNS, clean):
        scan.dosage = dosage.group(0)
    if expiry := _first_match(EXPIRY_PATTERNS, clean):
        # day/month/year as printed
        scan.expiry_date = "/".join(expiry.groups())

    words = clean.split(" ")
    for index, word in enumerate(words):
        if any(keyword in word for keyword in MANUFACTURER_KEYWORDS):
            scan.manufacturer = " ".join(words[max(0, index - 2):index + 1])
            break

    if batch := BATCH_PATTERN.search(clean):
        scan.batch_number = batch.group(1)
    return scan


def recognize_text(path: Path) -> str:
    """Run OCR on an image file. Blocking."""
    try:
        with Image.open(path) as image:
            prepared = ImageOps.autocontrast(ImageOps.grayscale(image))
            return pytesseract.image_to_string(prepared, lang=OCR_LANGUAGES)
    except (OSError, UnidentifiedImageError, pytesseract.TesseractError) as err:
        raise LabelScanError(f"Could not read {path.name}: {err}") from err


async def async_scan_label(hass: HomeAssistant, image_path: str) -> LabelScan:
    path = Path(image_path)
    if not hass.config.is_allowed_path(str(path)):
        raise LabelScanError(f"Access to {image_path} is not allowed")

    text = await hass.async_add_executor_job(recognize_text, path)
    _LOGGER.debug("OCR result for %s: %s", path.name, text)
    if not text.strip():
        raise LabelScanError("No text found on the label")
    return parse_label_text(text)
