"""
AlphaTool - compute an alpha channel from the difference of two images.
Compares two equally-sized RGB images pixel by pixel and writes a composite
RGBA image (averaged colour, alpha = 255 - difference) plus an optional
grayscale diff map, auto-cropped to the bounding box of qualifying pixels.
Features:
- Three channel mixing modes (average, luminosity, lightness).
- Vectorized row scanning with numpy, optionally split across worker threads.
- Bounding box accumulation with min/max reduction.
- Pillow based image loading and saving with format checks.
"""

import argparse
import json
import logging
import sys
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, asdict, fields
from enum import Enum
from functools import reduce
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Constants
VERSION = "1.0.0"
MAX_VALUE = 255
DEFAULT_MIX_MODE = "luminosity"
DEFAULT_WORKERS = 1
DEFAULT_OUTPUT_FORMAT = "PNG"
SUPPORTED_MODES = ("RGB", "RGBA")
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_UNHANDLED = 2

Pixel = Tuple[int, int, int]
ProgressCallback = Callable[[int, int], None]


class AlphaToolError(Exception):
    """Base class for all expected AlphaTool failures"""
    pass

class UsageError(AlphaToolError):
    """Missing or insufficient command line arguments"""
    pass

class ConfigError(AlphaToolError):
    """Configuration related errors"""
    pass

class InvalidModeError(ConfigError):
    """Unrecognized mix mode name"""
    pass

class LoadError(AlphaToolError):
    """Input file could not be read or decoded"""
    pass

class UnsupportedFormatError(AlphaToolError):
    """Decoded image is not 8-bit RGB or RGBA"""
    pass

class SizeMismatchError(AlphaToolError):
    """Input images differ in size"""
    pass

class SaveError(AlphaToolError):
    """Output file could not be written"""
    pass


# ---------------------------------------------------------------------------
# Channel mixing
# ---------------------------------------------------------------------------

def _round_half_away(values):
    """Round half away from zero (works on scalars and arrays)"""
    return np.where(values >= 0, np.floor(values + 0.5), np.ceil(values - 0.5))

def _mix_average(r, g, b):
    return (r + g + b) / 3.0

def _mix_luminosity(r, g, b):
    return (0.21 * r) + (0.72 * g) + (0.07 * b)

def _mix_lightness(r, g, b):
    return (np.maximum(np.maximum(r, g), b) + np.minimum(np.minimum(r, g), b)) / 2.0


class MixMode(Enum):
    """Formula used to reduce an RGB pixel to a single brightness value"""
    AVERAGE = "average"
    LUMINOSITY = "luminosity"
    LIGHTNESS = "lightness"

    @classmethod
    def names(cls) -> List[str]:
        return [mode.value for mode in cls]

    @classmethod
    def from_name(cls, name: Optional[str]) -> 'MixMode':
        """Resolve a mode by case-insensitive name; empty means the default"""
        if name is None or name == "":
            return cls(DEFAULT_MIX_MODE)
        if not isinstance(name, str):
            raise InvalidModeError(f"Mixing mode must be a string, got {name!r}")
        wanted = name.lower()
        for mode in cls:
            if mode.value == wanted:
                return mode
        raise InvalidModeError(
            f"Invalid mixing mode '{name}' (available: {', '.join(cls.names())})"
        )

    def formula(self) -> Callable:
        return _MIX_FORMULAS[self]


_MIX_FORMULAS: Dict[MixMode, Callable] = {
    MixMode.AVERAGE: _mix_average,
    MixMode.LUMINOSITY: _mix_luminosity,
    MixMode.LIGHTNESS: _mix_lightness,
}


def mix_array(rgb: np.ndarray, mode: MixMode) -> np.ndarray:
    """
    Mix the channels of an (..., 3) uint8 array into brightness values.

    Args:
        rgb: Array whose last axis holds red, green and blue
        mode: Mixing formula

    Returns:
        uint8 array with the last axis removed, values in [0, 255]
    """
    channels = np.asarray(rgb, dtype=np.float64)
    value = mode.formula()(channels[..., 0], channels[..., 1], channels[..., 2])
    return np.clip(_round_half_away(value), 0, MAX_VALUE).astype(np.uint8)

def mix(pixel: Sequence[int], mode: MixMode) -> int:
    """Mix a single (r, g, b) pixel"""
    return int(mix_array(np.asarray(pixel, dtype=np.uint8), mode))


# ---------------------------------------------------------------------------
# Pixel comparison
# ---------------------------------------------------------------------------

def compare_arrays(rgb1: np.ndarray, rgb2: np.ndarray, mode: MixMode) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compare two (..., 3) arrays position by position.

    Returns:
        (diff, avg) where diff is |mix(rgb1) - mix(rgb2)| as uint8 and avg is
        the per-channel rounded mean of both inputs as uint8
    """
    mixed1 = mix_array(rgb1, mode).astype(np.int16)
    mixed2 = mix_array(rgb2, mode).astype(np.int16)
    diff = np.abs(mixed1 - mixed2).astype(np.uint8)
    total = np.asarray(rgb1, dtype=np.float64) + np.asarray(rgb2, dtype=np.float64)
    avg = _round_half_away(total / 2.0).astype(np.uint8)
    return diff, avg

def compare(p1: Sequence[int], p2: Sequence[int], mode: MixMode) -> Tuple[int, Pixel]:
    """Compare two single pixels, returning (diff, averaged pixel)"""
    diff, avg = compare_arrays(np.asarray(p1, dtype=np.uint8), np.asarray(p2, dtype=np.uint8), mode)
    return int(diff), (int(avg[0]), int(avg[1]), int(avg[2]))

def alpha_from_diff(diff):
    return MAX_VALUE - diff

def qualifies(diff):
    """A pixel widens the bounding box unless it is maximally different"""
    return diff < MAX_VALUE


# ---------------------------------------------------------------------------
# Frame scanning
# ---------------------------------------------------------------------------

@dataclass
class BoundingBox:
    """Running bounds of qualifying pixels; only ever widens"""
    min_x: int
    max_x: int
    min_y: int
    max_y: int

    @classmethod
    def initial(cls, width: int, height: int) -> 'BoundingBox':
        return cls(min_x=width - 1, max_x=0, min_y=height - 1, max_y=0)

    def include(self, x: int, y: int):
        self.include_row(y, x, x)

    def include_row(self, y: int, x_min: int, x_max: int):
        if x_min < self.min_x: self.min_x = x_min
        if x_max > self.max_x: self.max_x = x_max
        if y < self.min_y: self.min_y = y
        if y > self.max_y: self.max_y = y

    def merge(self, other: 'BoundingBox') -> 'BoundingBox':
        return BoundingBox(
            min_x=min(self.min_x, other.min_x),
            max_x=max(self.max_x, other.max_x),
            min_y=min(self.min_y, other.min_y),
            max_y=max(self.max_y, other.max_y),
        )

    def is_degenerate(self) -> bool:
        return self.min_x >= self.max_x or self.min_y >= self.max_y

    def spans(self, width: int, height: int) -> bool:
        return (self.min_x == 0 and self.min_y == 0 and
                self.max_x == width - 1 and self.max_y == height - 1)

    def __str__(self) -> str:
        return f"x({self.min_x},{self.max_x}) y({self.min_y},{self.max_y})"


@dataclass
class ScanResult:
    """Buffers produced by a frame scan"""
    composite: np.ndarray
    diff_map: Optional[np.ndarray]
    bounds: BoundingBox


def _scan_rows(rgb1: np.ndarray, rgb2: np.ndarray, mode: MixMode, rows: range,
               composite: np.ndarray, diff_map: Optional[np.ndarray],
               progress: Optional[ProgressCallback] = None) -> BoundingBox:
    """Scan a contiguous band of rows, writing into the shared output buffers"""
    height, width = rgb1.shape[:2]
    bounds = BoundingBox.initial(width, height)
    for y in rows:
        if progress:
            progress(y, height)
        diff, avg = compare_arrays(rgb1[y], rgb2[y], mode)
        composite[y, :, :3] = avg
        composite[y, :, 3] = alpha_from_diff(diff)
        if diff_map is not None:
            diff_map[y, :, :3] = diff[:, np.newaxis]
            diff_map[y, :, 3] = MAX_VALUE
        columns = np.flatnonzero(qualifies(diff))
        if columns.size:
            bounds.include_row(y, int(columns[0]), int(columns[-1]))
    return bounds

def scan_frames(rgb1: np.ndarray, rgb2: np.ndarray, mode: MixMode,
                dual_output: bool = False, workers: int = DEFAULT_WORKERS,
                progress: Optional[ProgressCallback] = None) -> ScanResult:
    """
    Compare two (H, W, 3) uint8 images and build the output buffers.

    Args:
        rgb1, rgb2: Input images of identical width and height
        mode: Mixing formula
        dual_output: Also build the grayscale diff map
        workers: Number of threads; rows are split into contiguous bands
        progress: Optional callback receiving (rows done, total rows)

    Returns:
        ScanResult with the uncropped composite, the diff map (or None)
        and the bounding box of qualifying pixels
    """
    if rgb1.shape[:2] != rgb2.shape[:2]:
        raise SizeMismatchError(
            f"Input images don't match in size: "
            f"{rgb1.shape[1]}x{rgb1.shape[0]} vs {rgb2.shape[1]}x{rgb2.shape[0]}"
        )
    height, width = rgb1.shape[:2]
    composite = np.zeros((height, width, 4), dtype=np.uint8)
    diff_map = np.zeros((height, width, 4), dtype=np.uint8) if dual_output else None

    if workers <= 1 or height < 2:
        bounds = _scan_rows(rgb1, rgb2, mode, range(height), composite, diff_map, progress)
    else:
        bands = [range(int(b[0]), int(b[-1]) + 1)
                 for b in np.array_split(np.arange(height), min(workers, height)) if b.size]
        if progress:
            progress(0, height)
        band_bounds = []
        done = 0
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(_scan_rows, rgb1, rgb2, mode, band, composite, diff_map)
                       for band in bands]
            for band, future in zip(bands, futures):
                band_bounds.append(future.result())
                done += len(band)
                if progress and done < height:
                    progress(done, height)
        bounds = reduce(BoundingBox.merge, band_bounds, BoundingBox.initial(width, height))

    if progress:
        progress(height, height)
    return ScanResult(composite=composite, diff_map=diff_map, bounds=bounds)


class ProgressLogger:
    """Progress callback that logs every row at DEBUG and each step at INFO"""

    def __init__(self, step: int = 10):
        self.step = step
        self._next = 0

    def __call__(self, done: int, total: int):
        percent = int(100.0 * done / total + 0.5) if total else 100
        logger.debug(f"{done}/{total} ({percent}%)")
        if percent >= self._next:
            logger.info(f"Progress: {done}/{total} ({percent}%)")
            self._next = (percent // self.step + 1) * self.step


# ---------------------------------------------------------------------------
# Auto cropping
# ---------------------------------------------------------------------------

def crop_rect(bounds: BoundingBox, width: int, height: int) -> Optional[Tuple[int, int, int, int]]:
    """Return (x, y, w, h) to crop to, or None when no crop is warranted"""
    if bounds.is_degenerate() or bounds.spans(width, height):
        return None
    if bounds.min_x < 0 or bounds.min_y < 0 or bounds.max_x >= width or bounds.max_y >= height:
        return None
    return (bounds.min_x, bounds.min_y,
            bounds.max_x - bounds.min_x + 1, bounds.max_y - bounds.min_y + 1)

def maybe_crop(buffer: np.ndarray, bounds: BoundingBox) -> np.ndarray:
    """Crop an (H, W, ...) buffer to the bounding box if it is a strict subset"""
    height, width = buffer.shape[:2]
    rect = crop_rect(bounds, width, height)
    if rect is None:
        return buffer
    x, y, w, h = rect
    return buffer[y:y + h, x:x + w]


# ---------------------------------------------------------------------------
# Image I/O
# ---------------------------------------------------------------------------

def _rawmodes(img: Image.Image) -> List[str]:
    """Decoder raw modes of a not-yet-loaded image"""
    rawmodes = []
    for tile in img.tile:
        args = tile[3]
        if isinstance(args, tuple):
            args = args[0] if args else None
        if isinstance(args, str):
            rawmodes.append(args)
    return rawmodes

def load_image(path: str) -> np.ndarray:
    """Load an 8-bit RGB/RGBA image as an (H, W, 3) uint8 array"""
    try:
        with Image.open(path) as img:
            # Pillow narrows 16-bit RGB to mode RGB; only the raw mode tells
            wide = [raw for raw in _rawmodes(img) if ';16' in raw]
            if wide:
                raise UnsupportedFormatError(
                    f"Input file {path} is not in 24/32-bit format (raw mode {wide[0]})"
                )
            img.load()
            if img.mode not in SUPPORTED_MODES:
                raise UnsupportedFormatError(
                    f"Input file {path} is not in 24/32-bit format (mode {img.mode})"
                )
            if img.mode != 'RGB':
                img = img.convert('RGB')
            return np.array(img, dtype=np.uint8)
    except FileNotFoundError as e:
        raise LoadError(f"Input file not found: {path}") from e
    except UnidentifiedImageError as e:
        raise LoadError(f"Failed to decode input file: {path}") from e
    except OSError as e:
        raise LoadError(f"Failed to read input file {path}: {e}") from e

def save_image(array: np.ndarray, path: str, image_format: str = DEFAULT_OUTPUT_FORMAT):
    """Save an (H, W, 4) uint8 array as an RGBA image"""
    try:
        Image.fromarray(np.ascontiguousarray(array, dtype=np.uint8)).save(path, image_format)
    except (OSError, ValueError, KeyError) as e:
        raise SaveError(f"Failed to save output file {path}: {e}") from e


# ---------------------------------------------------------------------------
# Configuration and orchestration
# ---------------------------------------------------------------------------

@dataclass
class AlphaToolConfig:
    """Configuration for an AlphaTool run"""
    mix_mode: str = DEFAULT_MIX_MODE
    workers: int = DEFAULT_WORKERS
    output_format: str = DEFAULT_OUTPUT_FORMAT

    @classmethod
    def from_json(cls, path: str) -> 'AlphaToolConfig':
        """Load configuration from JSON file"""
        try:
            with open(path, 'r') as f:
                data = json.load(f)
            known = {field.name for field in fields(cls)}
            unknown = set(data) - known
            if unknown:
                raise ValueError(f"unknown keys {sorted(unknown)}")
            return cls(**data)
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

    def to_json(self, path: str):
        """Save configuration to JSON file"""
        with open(path, 'w') as f:
            json.dump(asdict(self), f, indent=2)

    def validate(self) -> MixMode:
        """Check the configuration and resolve the mix mode"""
        mode = MixMode.from_name(self.mix_mode)
        if not isinstance(self.workers, int) or self.workers < 1:
            raise ConfigError(f"workers must be a positive integer, got {self.workers!r}")
        return mode


@dataclass
class RunPaths:
    """Files read and written by one run"""
    input_1: str
    input_2: str
    output: str
    diff_map: Optional[str] = None

    @property
    def dual_output(self) -> bool:
        return self.diff_map is not None


@dataclass
class ProcessResult:
    """Summary of a completed run"""
    width: int
    height: int
    bounds: BoundingBox
    cropped: bool
    outputs: List[str]


class AlphaTool:
    """Load, scan, crop and save pipeline"""

    def __init__(self, config: Optional[AlphaToolConfig] = None):
        self.config = config or AlphaToolConfig()
        # Resolved up front so a bad mode fails before any file is touched
        self.mode = self.config.validate()

    def process(self, paths: RunPaths, progress: Optional[ProgressCallback] = None) -> ProcessResult:
        logger.info(f"AlphaTool v{VERSION} - compute alpha-channel from diff values")
        logger.info(f"Mix mode: {self.mode.value}")

        logger.info("Loading input images...")
        rgb1 = load_image(paths.input_1)
        rgb2 = load_image(paths.input_2)
        height, width = rgb1.shape[:2]
        logger.info(f"Image size: {width} x {height}")
        if rgb1.shape[:2] != rgb2.shape[:2]:
            raise SizeMismatchError(
                f"Input files don't match in size: {width}x{height} vs {rgb2.shape[1]}x{rgb2.shape[0]}"
            )

        logger.info("Processing image, please be patient...")
        result = scan_frames(rgb1, rgb2, self.mode,
                             dual_output=paths.dual_output,
                             workers=self.config.workers,
                             progress=progress or ProgressLogger())

        logger.info(f"Image bounds: {result.bounds}")
        composite = maybe_crop(result.composite, result.bounds)
        cropped = composite.shape != result.composite.shape
        if cropped:
            logger.info(f"Cropped size: {composite.shape[1]} x {composite.shape[0]}")

        logger.info(f"Saving output image to {paths.output}")
        save_image(composite, paths.output, self.config.output_format)
        outputs = [paths.output]
        if paths.dual_output:
            logger.info(f"Saving diff map to {paths.diff_map}")
            save_image(result.diff_map, paths.diff_map, self.config.output_format)
            outputs.append(paths.diff_map)

        logger.info("Completed.")
        return ProcessResult(
            width=composite.shape[1],
            height=composite.shape[0],
            bounds=result.bounds,
            cropped=cropped,
            outputs=outputs,
        )


class AlphaToolCLI:
    """Command-line interface for AlphaTool"""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog='alphatool',
            description='AlphaTool - compute alpha-channel from diff values',
            epilog=f"Mix modes: {', '.join(MixMode.names())} (default: {DEFAULT_MIX_MODE})",
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        parser.add_argument('--version', action='version', version=f'AlphaTool v{VERSION}')
        parser.add_argument('input_1', nargs='?', help='Path to the first input image')
        parser.add_argument('input_2', nargs='?', help='Path to the second input image')
        parser.add_argument('output', nargs='?', help='Output path for the composite image')
        parser.add_argument('mix_mode', nargs='?', help='Mixing mode (case-insensitive)')
        parser.add_argument('diff_map', nargs='?', help='Optional output path for the diff map')
        parser.add_argument('--config', help='Path to configuration file')
        parser.add_argument('--workers', type=int, help='Number of threads used for scanning')
        parser.add_argument('--write-config', metavar='PATH',
                            help='Write the default configuration file and exit')
        parser.add_argument('--verbose', action='store_true', help='Enable verbose logging')
        return parser

    def print_usage(self):
        self.parser.print_usage(sys.stderr)
        print(f"\nMix Modes:\n   {', '.join(MixMode.names())}\n", file=sys.stderr)

    def run(self, args=None) -> int:
        args = self.parser.parse_intermixed_args(args)

        if args.verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        try:
            if args.write_config:
                return self._write_config(args)
            return self._compute(args)
        except UsageError as e:
            logger.error(f"Error: {e}")
            self.print_usage()
            return EXIT_FAILURE
        except AlphaToolError as e:
            logger.error(f"Error: {e}")
            return EXIT_FAILURE
        except Exception as e:
            logger.critical(f"UNHANDLED EXCEPTION ERROR: {e!r}")
            logger.debug(traceback.format_exc())
            return EXIT_UNHANDLED

    def _compute(self, args) -> int:
        if not (args.input_1 and args.input_2 and args.output):
            raise UsageError("Need <input_1> <input_2> <output>")

        if args.config:
            config = AlphaToolConfig.from_json(args.config)
        else:
            config = AlphaToolConfig()
        if args.mix_mode:
            config.mix_mode = args.mix_mode
        if args.workers is not None:
            config.workers = args.workers

        tool = AlphaTool(config)
        paths = RunPaths(args.input_1, args.input_2, args.output, args.diff_map)

        start_time = time.time()
        result = tool.process(paths)
        elapsed = time.time() - start_time
        logger.info(f"Wrote {', '.join(result.outputs)} "
                    f"({result.width} x {result.height}, took {elapsed:.2f}s)")
        return EXIT_SUCCESS

    def _write_config(self, args) -> int:
        path = args.write_config
        AlphaToolConfig().to_json(path)
        logger.info(f"Default configuration saved to {path}")
        return EXIT_SUCCESS


def main():
    cli = AlphaToolCLI()
    sys.exit(cli.run())

if __name__ == '__main__':
    main()
