"""Tests for reading medicine labels."""
from unittest.mock import patch

from PIL import Image
import pytest

from homeassistant.core import HomeAssistant

from custom_components.medi_remind.label_scanner import (
    LabelScanError, async_scan_label, parse_label_text, recognize_text,
)

LABEL = """
METFORMIN Hydrochloride Tablets IP
500 mg
Batch: AB1234
EXP: 01/12/2031
Sun Pharma Ltd
"""


def test_parse_english_label():
    scan = parse_label_text(LABEL)

    assert scan.name == "Metformin"
    assert scan.category == "diabetes"
    assert scan.dosage == "500 mg"
    assert scan.expiry_date == "01/12/2031"
    assert scan.batch_number == "ab1234"
    assert "pharma" in scan.manufacturer
    assert scan.confidence == 0.8


def test_parse_hindi_label():
    scan = parse_label_text("पैरासिटामोल 650 mg मियाद: 03/05/2032")

    assert scan.name == "Paracetamol"
    assert scan.dosage == "650 mg"
    assert scan.expiry_date == "03/05/2032"


def test_parse_unknown_label():
    scan = parse_label_text("store in a cool dry place")

    assert not scan.name_matched
    assert not scan.dosage_matched
    assert not scan.expiry_matched
    assert scan.confidence == 0.3
    assert scan.as_dict()["name"] is None


def test_recognize_text(tmp_path):
    path = tmp_path / "label.png"
    Image.new("RGB", (20, 20), "white").save(path)

    with patch(
        "custom_components.medi_remind.label_scanner.pytesseract.image_to_string",
        return_value="Aspirin 75 mg",
    ) as mock_ocr:
        assert recognize_text(path) == "Aspirin 75 mg"

    assert mock_ocr.call_args.kwargs["lang"] == "eng+hin"


def test_recognize_missing_file(tmp_path):
    with pytest.raises(LabelScanError):
        recognize_text(tmp_path / "missing.png")


async def test_scan_outside_allowed_dirs(hass: HomeAssistant, tmp_path):
    hass.config.allowlist_external_dirs = set()

    with pytest.raises(LabelScanError):
        await async_scan_label(hass, str(tmp_path / "label.png"))


async def test_scan_label(hass: HomeAssistant, tmp_path):
    hass.config.allowlist_external_dirs = {str(tmp_path.resolve())}

    with patch(
        "custom_components.medi_remind.label_scanner.recognize_text",
        return_value="Amlodipine 5 mg",
    ):
        scan = await async_scan_label(hass, str(tmp_path / "label.png"))

    assert scan.name == "Amlodipine"
    assert scan.category == "bp"
