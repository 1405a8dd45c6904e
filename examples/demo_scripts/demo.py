#!/usr/bin/env python3
"""
Demo script for AlphaTool
Creates a pair of test images and writes the composite and diff map for every mix mode
"""

from PIL import Image, ImageDraw

from alphatool import AlphaTool, AlphaToolConfig, MixMode, RunPaths

def create_test_images():
    """Create a background plate and the same plate with a shape drawn on it"""

    print("Creating test images...")

    # Image 1: plain gradient plate
    img1 = Image.new('RGB', (400, 300), color='white')
    draw = ImageDraw.Draw(img1)
    for y in range(300):
        color = int(255 * (1 - y / 300))
        draw.rectangle([(0, y), (400, y+1)], fill=(color, color, 255))
    draw.rectangle([0, 0, 399, 9], fill='white')
    img1.save('demo_background.png')
    print("✓ Created demo_background.png")

    # Image 2: same plate with an object in front
    img2 = img1.copy()
    draw2 = ImageDraw.Draw(img2)
    draw2.ellipse([50, 50, 150, 150], fill='red', outline='darkred', width=3)
    draw2.rectangle([200, 100, 350, 200], fill='green', outline='darkgreen', width=3)
    # White against black is excluded from the bounds, so the auto-crop trims this strip
    draw2.rectangle([0, 0, 399, 9], fill='black')
    img2.save('demo_object.png')
    print("✓ Created demo_object.png")

    return 'demo_background.png', 'demo_object.png'

def run_demo():
    """Run AlphaTool once per mix mode"""
    print("=" * 60)
    print("AlphaTool - Demo")
    print("=" * 60)

    background, foreground = create_test_images()

    for mode in MixMode:
        print(f"\nMix mode: {mode.value}")
        tool = AlphaTool(AlphaToolConfig(mix_mode=mode.value, workers=2))
        result = tool.process(RunPaths(
            background, foreground,
            f'demo_alpha_{mode.value}.png',
            f'demo_diff_{mode.value}.png'
        ))
        print(f"  - Output size: {result.width} x {result.height}")
        print(f"  - Bounds: {result.bounds}")
        print(f"  - Cropped: {'yes' if result.cropped else 'no'}")
        print(f"  - Files: {', '.join(result.outputs)}")

if __name__ == '__main__':
    run_demo()
