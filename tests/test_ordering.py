import unittest
import zlib

from codeshot.services.ordering import HASH_KEY_OFFSET, image_order_key, sort_image_refs


class TestImageOrderKey(unittest.TestCase):
    def test_zero_padded_sequence_number(self) -> None:
        self.assertEqual(image_order_key("/uploads/code-extraction/abc/0001_x.jpg"), 1)
        self.assertEqual(image_order_key("/uploads/code-extraction/abc/0042_y.png"), 42)

    def test_only_final_segment_is_read(self) -> None:
        self.assertEqual(image_order_key("/uploads/batch-2024/77/shot_0003.png"), 3)

    def test_longest_digit_run_wins(self) -> None:
        self.assertEqual(image_order_key("/x/v2_screen_00015.png"), 15)

    def test_first_run_wins_on_tie(self) -> None:
        self.assertEqual(image_order_key("/x/12_34.png"), 12)

    def test_digits_clamped(self) -> None:
        self.assertEqual(image_order_key("/x/12345678901234.png"), 123456789)

    def test_query_string_ignored(self) -> None:
        self.assertEqual(
            image_order_key("https://cdn.example.com/uploads/a/0007.png?v=123456789012"), 7
        )

    def test_no_digits_uses_stable_hash(self) -> None:
        ref = "/uploads/code-extraction/abc/screenshot.png"
        key = image_order_key(ref)
        self.assertEqual(key, HASH_KEY_OFFSET + zlib.crc32(ref.encode("utf-8")))
        self.assertEqual(key, image_order_key(ref))
        self.assertGreater(key, image_order_key("/x/999999999.png"))


class TestSortImageRefs(unittest.TestCase):
    def test_sorts_by_sequence_number(self) -> None:
        refs = ["/u/0001_x.jpg", "/u/0003_z.jpg", "/u/0002_y.jpg"]
        self.assertEqual(
            sort_image_refs(refs), ["/u/0001_x.jpg", "/u/0002_y.jpg", "/u/0003_z.jpg"]
        )

    def test_ties_keep_arrival_order(self) -> None:
        refs = ["/a/5_second.png", "/b/5_first.png", "/c/1.png"]
        self.assertEqual(sort_image_refs(refs), ["/c/1.png", "/a/5_second.png", "/b/5_first.png"])

    def test_undigited_refs_are_kept_after_numbered_ones(self) -> None:
        refs = ["/u/cover.png", "/u/0002.png", "/u/0001.png"]
        ordered = sort_image_refs(refs)
        self.assertEqual(ordered[:2], ["/u/0001.png", "/u/0002.png"])
        self.assertEqual(len(ordered), 3)
        self.assertIn("/u/cover.png", ordered)

    def test_input_not_mutated(self) -> None:
        refs = ["/u/2.png", "/u/1.png"]
        sort_image_refs(refs)
        self.assertEqual(refs, ["/u/2.png", "/u/1.png"])


if __name__ == "__main__":
    unittest.main()
