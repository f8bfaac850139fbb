import unittest
from unittest.mock import MagicMock, patch

from codeshot.core.errors import AssemblyFailedError, MergeUnavailableError
from codeshot.services.assembler import NO_CODE_PLACEHOLDER, assemble_fragments
from codeshot.services.recognizer import Fragment


def _fragments() -> list[Fragment]:
    return [
        Fragment(position=1, ref="/u/0001.png", text="package a;\nimport b.C;"),
        Fragment.failure(2, "/u/0002.png", "quota exceeded"),
        Fragment(position=3, ref="/u/0003.png", text="class D {}"),
    ]


class TestAssembleFragments(unittest.TestCase):
    @patch("codeshot.services.assembler.merge_code_fragments")
    def test_no_fragments_gives_placeholder(self, mock_merge: MagicMock) -> None:
        self.assertEqual(assemble_fragments([]), NO_CODE_PLACEHOLDER)
        mock_merge.assert_not_called()

    @patch("codeshot.services.assembler.merge_code_fragments")
    def test_single_fragment_returned_unchanged(self, mock_merge: MagicMock) -> None:
        fragment = Fragment(position=1, ref="/u/0001.png", text="int x;")
        self.assertEqual(assemble_fragments([fragment]), fragment.render())
        mock_merge.assert_not_called()

    @patch("codeshot.services.assembler.merge_code_fragments")
    def test_several_fragments_use_merge_model(self, mock_merge: MagicMock) -> None:
        mock_merge.return_value = "package a;\nimport b.C;\nclass D {}"

        result = assemble_fragments(_fragments())

        self.assertEqual(result, "package a;\nimport b.C;\nclass D {}")
        mock_merge.assert_called_once_with([f.render() for f in _fragments()])

    @patch("codeshot.services.assembler.merge_code_fragments")
    def test_fallback_concatenates_in_order(self, mock_merge: MagicMock) -> None:
        mock_merge.side_effect = MergeUnavailableError("Missing OpenRouter API key.")

        result = assemble_fragments(_fragments())

        expected = (
            "// --- Image 1 ---\npackage a;\nimport b.C;"
            "\n\n"
            "// --- Image 2 (ERROR: quota exceeded) ---\n"
            "\n\n"
            "// --- Image 3 ---\nclass D {}"
        )
        self.assertEqual(result, expected)
        self.assertEqual(assemble_fragments(_fragments()), result)

    @patch("codeshot.services.assembler.merge_code_fragments")
    def test_unusable_merge_answer_propagates(self, mock_merge: MagicMock) -> None:
        mock_merge.side_effect = AssemblyFailedError("Empty response from OpenRouter merge model.")
        with self.assertRaises(AssemblyFailedError):
            assemble_fragments(_fragments())


if __name__ == "__main__":
    unittest.main()
