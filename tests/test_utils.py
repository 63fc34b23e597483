# tests/test_utils.py
"""Tests for image file checks and preprocessed image decoding."""

import base64
import shutil
import tempfile
import unittest
from pathlib import Path

import numpy as np

from inscription_reader.core.errors import DataError, ValidationError
from inscription_reader.utils import decode_base64_png, decode_png, image_size, validate_image_file

from fake_backend import make_png, write_photo


class TestValidateImageFile(unittest.TestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_valid_png(self):
        photo = write_photo(self.tmp, 'stone.png')
        self.assertEqual(validate_image_file(str(photo)), photo)

    def test_missing_file(self):
        with self.assertRaises(ValidationError) as cm:
            validate_image_file(self.tmp / 'missing.png')
        self.assertEqual(cm.exception.context['field'], 'file')

    def test_directory(self):
        with self.assertRaises(ValidationError):
            validate_image_file(self.tmp)

    def test_not_an_image(self):
        notes = self.tmp / 'notes.png'
        notes.write_text("not an image")
        with self.assertRaises(ValidationError) as cm:
            validate_image_file(notes)
        self.assertIn("notes.png", cm.exception.message)


class TestDecoding(unittest.TestCase):

    def test_decode_base64_png(self):
        png = make_png(5, 3)
        self.assertEqual(decode_base64_png(base64.b64encode(png).decode()), png)

    def test_decode_data_url(self):
        png = make_png(5, 3)
        text = "data:image/png;base64," + base64.b64encode(png).decode()
        self.assertEqual(decode_base64_png(text), png)

    def test_decode_base64_rejects_garbage(self):
        for text in ("not base64!", "", None):
            with self.subTest(text=text):
                with self.assertRaises(DataError):
                    decode_base64_png(text)

    def test_decode_png_to_array(self):
        pixels = decode_png(make_png(5, 3, color=200))
        self.assertIsInstance(pixels, np.ndarray)
        self.assertEqual(pixels.shape, (3, 5))
        self.assertTrue((pixels == 200).all())

    def test_image_size(self):
        self.assertEqual(image_size(make_png(7, 4)), (7, 4))

    def test_image_size_reads_header_only(self):
        data = make_png(64, 48)
        # Cut the pixel data short; the header still carries the dimensions
        truncated = data[:data.index(b'IDAT') + 10]
        self.assertEqual(image_size(truncated), (64, 48))

    def test_undecodable_png(self):
        with self.assertRaises(DataError):
            image_size(b"garbage")


if __name__ == '__main__':
    unittest.main()
