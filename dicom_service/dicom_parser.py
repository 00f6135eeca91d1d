"""DICOM parsing and rendering on top of pydicom.

The router only talks to the ``DicomParser`` protocol, so an alternative
imaging backend can be swapped in through the ``get_dicom_parser`` dependency.
All methods are blocking and are expected to run in a worker thread.
"""

import re
from io import BytesIO
from typing import BinaryIO, Protocol

import numpy as np
import pydicom
from PIL import Image
from pydicom.dataset import Dataset
from pydicom.errors import InvalidDicomError
from pydicom.multival import MultiValue
from pydicom.pixels import apply_color_lut, apply_modality_lut, apply_voi_lut
from pydicom.tag import BaseTag, Tag

from exceptions import FrameIndexError, InvalidTagError, TagNotFoundError
from logging_config import get_logger

logger = get_logger(__name__)

_TAG_PATTERN = re.compile(r"^\(?\s*([0-9A-Fa-f]{4})\s*,\s*([0-9A-Fa-f]{4})\s*\)?$")
VALUE_DELIMITER = "\\"


class DicomParser(Protocol):
    def validate(self, stream: BinaryIO) -> bool: ...

    def load(self, stream: BinaryIO) -> Dataset: ...

    def read_tag(self, stream: BinaryIO, tag: str) -> str: ...

    def frame_count(self, dataset: Dataset) -> int: ...

    def render_frame(self, dataset: Dataset, frame_index: int) -> bytes: ...


def parse_tag(tag: str) -> BaseTag:
    """Parse ``GGGG,EEEE`` or ``(GGGG,EEEE)`` into a pydicom tag."""
    match = _TAG_PATTERN.match((tag or "").strip())
    if not match:
        raise InvalidTagError(f"Invalid DICOM tag format: {tag} - expected '0002,0000' or '(0002,0000)'")
    group, element = match.groups()
    return Tag(int(group, 16), int(element, 16))


def _rewind(stream: BinaryIO) -> None:
    if hasattr(stream, "seek"):
        stream.seek(0)


def _scale_to_uint8(pixels: np.ndarray) -> np.ndarray:
    data = pixels.astype(np.float32)
    low, high = float(data.min()), float(data.max())
    if high <= low:
        return np.zeros(data.shape, dtype=np.uint8)
    return ((data - low) * (255.0 / (high - low))).clip(0, 255).astype(np.uint8)


def _shift_to_uint8(pixels: np.ndarray, bits: int) -> np.ndarray:
    """Drop the low bits of colour samples so the full bit depth maps onto 0-255."""
    if bits > 8:
        pixels = pixels >> (bits - 8)
    return pixels.clip(0, 255).astype(np.uint8)


class PydicomParser:
    def validate(self, stream: BinaryIO) -> bool:
        _rewind(stream)
        try:
            pydicom.dcmread(stream)
            return True
        except InvalidDicomError:
            return False
        except Exception:
            # Truncated or garbled input surfaces as assorted read errors.
            logger.debug("Stream could not be parsed as DICOM", exc_info=True)
            return False
        finally:
            _rewind(stream)

    def load(self, stream: BinaryIO) -> Dataset:
        _rewind(stream)
        dataset = pydicom.dcmread(stream)
        _rewind(stream)
        return dataset

    def read_tag(self, stream: BinaryIO, tag: str) -> str:
        dicom_tag = parse_tag(tag)
        dataset = self.load(stream)

        source = dataset
        if dicom_tag.group == 0x0002:
            source = getattr(dataset, "file_meta", None) or Dataset()

        if dicom_tag not in source:
            raise TagNotFoundError(f"Tag {tag} not found in DICOM file")

        element = source[dicom_tag]
        value = element.value
        if element.VR == "SQ" or value is None or value == "" or value == b"":
            raise TagNotFoundError(f"Tag {tag} has no single value in DICOM file")

        if isinstance(value, MultiValue):
            if len(value) == 0:
                raise TagNotFoundError(f"Tag {tag} has no single value in DICOM file")
            return VALUE_DELIMITER.join(str(item) for item in value)
        if isinstance(value, bytes):
            return value.hex().upper()
        return str(value)

    def frame_count(self, dataset: Dataset) -> int:
        try:
            frames = int(dataset.get("NumberOfFrames", 1) or 1)
        except (TypeError, ValueError):
            frames = 1
        return max(frames, 1)

    def render_frame(self, dataset: Dataset, frame_index: int) -> bytes:
        total = self.frame_count(dataset)
        if frame_index < 0 or frame_index >= total:
            raise FrameIndexError(frame_index, total)

        pixels = dataset.pixel_array
        if total > 1:
            pixels = pixels[frame_index]

        photometric = str(dataset.get("PhotometricInterpretation", "MONOCHROME2")).upper()
        if photometric in ("MONOCHROME1", "MONOCHROME2"):
            image = Image.fromarray(self._grayscale(dataset, pixels, photometric))
        elif photometric == "PALETTE COLOR":
            colours = apply_color_lut(pixels, dataset)
            image = Image.fromarray(_shift_to_uint8(colours, colours.dtype.itemsize * 8))
        else:
            # pixel_array already returns RGB for YBR_FULL and YBR_FULL_422.
            bits_stored = int(dataset.get("BitsStored", pixels.dtype.itemsize * 8))
            image = Image.fromarray(_shift_to_uint8(pixels, bits_stored)).convert("RGB")

        buffer = BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    def _grayscale(self, dataset: Dataset, pixels: np.ndarray, photometric: str) -> np.ndarray:
        data = apply_modality_lut(pixels, dataset)
        if "WindowCenter" in dataset or "VOILUTSequence" in dataset:
            data = apply_voi_lut(data, dataset)
        data = _scale_to_uint8(data)
        if photometric == "MONOCHROME1":
            data = 255 - data
        return data
