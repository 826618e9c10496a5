import unittest

from mealvision.schemas.analysis import Minerals, Vitamins
from mealvision.utils.nutrient_catalog import (
    MINERAL_KEYS,
    MINERAL_UNITS,
    VITAMIN_KEYS,
    VITAMIN_UNITS,
    daily_intake,
    label_for,
    unit_for,
)


class TestNutrientCatalog(unittest.TestCase):

    def test_catalog_sizes(self):
        self.assertEqual(len(VITAMIN_KEYS), 13)
        self.assertEqual(len(MINERAL_KEYS), 16)

    def test_every_parsed_key_has_a_unit(self):
        for key in Vitamins().as_dict():
            self.assertIn(VITAMIN_UNITS[key], ("μg", "mg"))
        for key in Minerals().as_dict():
            self.assertIn(MINERAL_UNITS[key], ("μg", "mg"))

    def test_units(self):
        self.assertEqual(unit_for("vitaminA"), "μg")
        self.assertEqual(unit_for("vitaminC"), "mg")
        self.assertEqual(unit_for("iodine"), "μg")
        self.assertEqual(unit_for("sodium"), "mg")
        self.assertEqual(unit_for("protein"), "g")

    def test_unknown_key(self):
        with self.assertRaises(KeyError):
            unit_for("vitaminZ")

    def test_labels(self):
        self.assertEqual(label_for("vitaminB9"), "Vitamin B9 (folate)")

    def test_daily_intake_by_gender(self):
        self.assertEqual(daily_intake("iron", "male"), 8)
        self.assertEqual(daily_intake("iron", "Female"), 18)
        self.assertIsNone(daily_intake("sulfur", "male"))

    def test_daily_intake_unknown_gender(self):
        with self.assertRaises(ValueError):
            daily_intake("iron", "other")


if __name__ == '__main__':
    unittest.main()
