import unittest

from download_patches import EmptyFileListError, PatchFileRef, has_extension, select_first_file, select_matching_file


def make_file(name: str) -> PatchFileRef:
    return PatchFileRef(id=1, url=f'https://patchstorage.test/files/{name}', filesize=10, filename=name)


class TestHasExtension(unittest.TestCase):
    """
    Tests has_extension().
    """

    def test_examples(self) -> None:
        cases: list[tuple[str, str, bool]] = [
            ('basename', 'bin', False),
            ('basename.syx', 'bin', False),
            ('basename.syx', 'syx', True),
            ('basename.tar.gz', 'gz', True),
        ]
        for filename, extension, expected in cases:
            with self.subTest(filename=filename, extension=extension):
                self.assertEqual(has_extension(filename, extension), expected)

    def test_case_sensitive(self) -> None:
        self.assertFalse(has_extension('basename.SYX', 'syx'))


class TestFileSelection(unittest.TestCase):
    """
    Tests select_first_file() and select_matching_file().
    """

    def test_first_ignores_extension(self) -> None:
        files: list[PatchFileRef] = [make_file('a.txt'), make_file('a.syx')]
        self.assertEqual(select_first_file(files, 'syx').filename, 'a.txt')

    def test_matching_skips_others(self) -> None:
        files: list[PatchFileRef] = [make_file('a.txt'), make_file('a.syx'), make_file('b.syx')]
        self.assertEqual(select_matching_file(files, 'syx').filename, 'a.syx')

    def test_matching_none_found(self) -> None:
        self.assertIsNone(select_matching_file([make_file('a.txt')], 'syx'))

    def test_empty_list(self) -> None:
        for selector in (select_first_file, select_matching_file):
            with self.subTest(selector=selector.__name__):
                with self.assertRaises(EmptyFileListError):
                    selector([], 'syx')


if __name__ == '__main__':
    unittest.main()
