"""Tests for identity token classification."""
from __future__ import annotations

import uuid

from django.test import SimpleTestCase

from forms.identity import NEW, classify_token


class ClassifyTokenTests(SimpleTestCase):
    def test_positive_integers_are_durable(self) -> None:
        identity = classify_token(42)
        self.assertTrue(identity.is_durable)
        self.assertEqual(identity.durable_id, 42)

    def test_digit_strings_are_durable(self) -> None:
        self.assertEqual(classify_token("17").durable_id, 17)
        self.assertEqual(classify_token(" 17 ").durable_id, 17)

    def test_client_tokens_are_new(self) -> None:
        for token in ["tmp-1", str(uuid.uuid4()), "", "12a", "-4", "١٢"]:
            with self.subTest(token=token):
                self.assertIs(classify_token(token), NEW)

    def test_non_positive_and_odd_values_are_new(self) -> None:
        for token in [0, -3, "0", None, True, False, 4.0, {"id": 1}]:
            with self.subTest(token=token):
                self.assertTrue(classify_token(token).is_new)
