#!/usr/bin/env python3
"""
cli.py - Main entry point for AlphaTool
Computes an alpha channel from the difference of two images and writes the
auto-cropped composite (and optionally the diff map) as PNG.
"""

import logging
from dataclasses import replace
from typing import Optional

from .core import (
    AlphaTool,
    AlphaToolCLI,
    AlphaToolConfig,
    ProcessResult,
    RunPaths,
    DEFAULT_MIX_MODE,
    VERSION,
    main,
)

# Export main components for direct import
__all__ = [
    'AlphaToolCLI',
    'AlphaToolConfig',
    'VERSION',
    'compute_alpha',
    'load_config',
    'save_config',
    'main',
]

logger = logging.getLogger(__name__)


def compute_alpha(input_1: str, input_2: str, output: str,
                  mix_mode: str = DEFAULT_MIX_MODE,
                  diff_map: Optional[str] = None,
                  config: AlphaToolConfig = None) -> ProcessResult:
    """
    Convenience function to run the whole pipeline

    Args:
        input_1: Path to the first input image
        input_2: Path to the second input image
        output: Path of the composite image to write
        mix_mode: Name of the mixing formula
        diff_map: Optional path of the grayscale diff map to write
        config: Optional AlphaToolConfig; left untouched, mix_mode applies to this run only

    Returns:
        ProcessResult describing the written composite

    Example:
        >>> result = compute_alpha('a.png', 'b.png', 'out.png', 'average')
        >>> print(result.width, result.height, result.cropped)
    """
    if config is None:
        config = AlphaToolConfig()
    tool = AlphaTool(replace(config, mix_mode=mix_mode))
    return tool.process(RunPaths(input_1, input_2, output, diff_map))

def load_config(filepath: str) -> AlphaToolConfig:
    """Load a configuration from a JSON file"""
    return AlphaToolConfig.from_json(filepath)

def save_config(config: AlphaToolConfig, filepath: str):
    """Save a configuration to a JSON file"""
    config.to_json(filepath)
    logger.info(f"Configuration saved to {filepath}")

if __name__ == '__main__':
    # Run CLI when executed directly
    main()
