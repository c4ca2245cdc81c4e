import unittest

from scenebundle.core.filters import FilterCompatibilityFilter
from scenebundle.models import SkippedFilterRecord


class TestFilterCompatibility(unittest.TestCase):
    def test_vst_filter_removed_and_recorded(self):
        f = FilterCompatibilityFilter()
        filters = [{"id": "vst_filter", "name": "A"}, {"id": "color_filter", "name": "B"}]

        removed = f.apply("Mic", filters)

        self.assertEqual(filters, [{"id": "color_filter", "name": "B"}])
        self.assertEqual(removed, [SkippedFilterRecord(source_name="Mic", filter_name="A")])
        self.assertEqual(f.skipped, removed)

    def test_order_of_kept_filters_preserved(self):
        f = FilterCompatibilityFilter()
        filters = [
            {"id": "color_filter", "name": "1"},
            {"id": "vst_filter", "name": "x"},
            {"id": "crop_filter", "name": "2"},
            {"id": "vst_filter", "name": "y"},
            {"id": "gain_filter", "name": "3"},
        ]
        f.apply("Src", filters)
        self.assertEqual([x["name"] for x in filters], ["1", "2", "3"])
        self.assertEqual([r.filter_name for r in f.skipped], ["x", "y"])

    def test_non_object_entries_are_kept(self):
        f = FilterCompatibilityFilter()
        filters = ["text", 3, {"name": "no id"}]
        f.apply("Src", filters)
        self.assertEqual(filters, ["text", 3, {"name": "no id"}])
        self.assertEqual(f.skipped, [])

    def test_custom_incompatible_ids_and_reset(self):
        f = FilterCompatibilityFilter({"shader_filter"})
        filters = [{"id": "vst_filter", "name": "A"}, {"id": "shader_filter", "name": "B"}]
        f.apply("Src", filters)
        self.assertEqual(filters, [{"id": "vst_filter", "name": "A"}])
        self.assertEqual(len(f.skipped), 1)

        f.reset()
        self.assertEqual(f.skipped, [])


if __name__ == "__main__":
    unittest.main()
