#!/usr/bin/env python3
"""Tests for the AlphaTool command-line interface"""

import contextlib
import io
import os
import shutil
import tempfile
import unittest
from unittest import mock

import numpy as np
from PIL import Image

from alphatool.cli import AlphaToolCLI, compute_alpha, load_config, main
from alphatool.core import AlphaToolConfig


class TestAlphaToolCLI(unittest.TestCase):
    """Test argument handling and exit statuses"""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        black = np.zeros((4, 4, 3), dtype=np.uint8)
        marked = black.copy()
        marked[:, 0] = 255
        self.image_a = self._save('a.png', black)
        self.image_b = self._save('b.png', marked)
        self.image_small = self._save('small.png', np.zeros((2, 2, 3), dtype=np.uint8))
        self.out = os.path.join(self.test_dir, 'out.png')
        self.diff = os.path.join(self.test_dir, 'diff.png')

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def _save(self, name, arr):
        path = os.path.join(self.test_dir, name)
        Image.fromarray(arr).save(path)
        return path

    def _run(self, *args):
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            code = AlphaToolCLI().run(list(args))
        return code, stderr.getvalue()

    def test_default_mode(self):
        code, _ = self._run(self.image_a, self.image_b, self.out)
        self.assertEqual(code, 0)
        with Image.open(self.out) as img:
            self.assertEqual(img.mode, 'RGBA')
            self.assertEqual(img.size, (3, 4))

    def test_dual_output(self):
        code, _ = self._run(self.image_a, self.image_b, self.out, 'AVERAGE', self.diff)
        self.assertEqual(code, 0)
        with Image.open(self.diff) as img:
            self.assertEqual(img.size, (4, 4))
            self.assertEqual(img.getpixel((0, 2)), (255, 255, 255, 255))

    def test_options_between_positionals(self):
        code, _ = self._run(self.image_a, self.image_b, self.out, '--workers', '2', 'lightness')
        self.assertEqual(code, 0)
        self.assertTrue(os.path.exists(self.out))

    def test_missing_arguments(self):
        code, stderr = self._run(self.image_a)
        self.assertEqual(code, 1)
        self.assertIn('Mix Modes', stderr)
        self.assertIn('luminosity', stderr)

    def test_invalid_mode(self):
        missing = os.path.join(self.test_dir, 'missing.png')
        code, _ = self._run(missing, missing, self.out, 'sepia')
        self.assertEqual(code, 1)
        self.assertFalse(os.path.exists(self.out))

    def test_size_mismatch(self):
        code, _ = self._run(self.image_a, self.image_small, self.out)
        self.assertEqual(code, 1)
        self.assertFalse(os.path.exists(self.out))

    def test_missing_input(self):
        code, _ = self._run(os.path.join(self.test_dir, 'missing.png'), self.image_b, self.out)
        self.assertEqual(code, 1)

    def test_unexpected_fault(self):
        with mock.patch('alphatool.cli.AlphaTool.process', side_effect=RuntimeError('boom')):
            code, _ = self._run(self.image_a, self.image_b, self.out)
        self.assertEqual(code, 2)

    def test_write_and_use_config(self):
        config_path = os.path.join(self.test_dir, 'config.json')
        code, _ = self._run('--write-config', config_path)
        self.assertEqual(code, 0)
        config = load_config(config_path)
        self.assertEqual(config, AlphaToolConfig())

        config.mix_mode = 'sepia'
        config.to_json(config_path)
        code, _ = self._run(self.image_a, self.image_b, self.out, '--config', config_path)
        self.assertEqual(code, 1)
        code, _ = self._run(self.image_a, self.image_b, self.out, 'average', '--config', config_path)
        self.assertEqual(code, 0)

    def test_bad_config_file(self):
        config_path = os.path.join(self.test_dir, 'broken.json')
        with open(config_path, 'w') as f:
            f.write('{not json')
        code, _ = self._run(self.image_a, self.image_b, self.out, '--config', config_path)
        self.assertEqual(code, 1)

    def test_non_string_mode_in_config(self):
        config_path = os.path.join(self.test_dir, 'numeric.json')
        with open(config_path, 'w') as f:
            f.write('{"mix_mode": 5}')
        code, _ = self._run(self.image_a, self.image_b, self.out, '--config', config_path)
        self.assertEqual(code, 1)
        self.assertFalse(os.path.exists(self.out))

    def test_main_exit_status(self):
        with mock.patch('sys.argv', ['alphatool', self.image_a, self.image_b, self.out]):
            with self.assertRaises(SystemExit) as ctx:
                main()
        self.assertEqual(ctx.exception.code, 0)


class TestComputeAlpha(unittest.TestCase):
    """Test the convenience wrapper"""

    def test_compute_alpha(self):
        test_dir = tempfile.mkdtemp()
        try:
            a = os.path.join(test_dir, 'a.png')
            b = os.path.join(test_dir, 'b.png')
            out = os.path.join(test_dir, 'out.png')
            Image.new('RGB', (5, 3), color=(100, 150, 200)).save(a)
            Image.new('RGB', (5, 3), color=(100, 150, 200)).save(b)
            result = compute_alpha(a, b, out, 'lightness')
            self.assertFalse(result.cropped)
            self.assertEqual((result.width, result.height), (5, 3))
            self.assertEqual(result.outputs, [out])
        finally:
            shutil.rmtree(test_dir)

    def test_compute_alpha_leaves_config_alone(self):
        test_dir = tempfile.mkdtemp()
        try:
            a = os.path.join(test_dir, 'a.png')
            out = os.path.join(test_dir, 'out.png')
            Image.new('RGB', (2, 2), color=(1, 2, 3)).save(a)
            config = AlphaToolConfig(mix_mode='average', workers=2)
            compute_alpha(a, a, out, 'lightness', config=config)
            self.assertEqual(config, AlphaToolConfig(mix_mode='average', workers=2))
            self.assertTrue(os.path.exists(out))
        finally:
            shutil.rmtree(test_dir)


if __name__ == '__main__':
    unittest.main(verbosity=2)
