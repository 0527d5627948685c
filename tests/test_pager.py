import json
import unittest

import httpx

from download_patches import (
    CatalogEntry,
    MissingLinkHeaderError,
    PageRequest,
    PageResult,
    PatchCatalogPager,
    ResilientTransport,
    ResponseDecodeError,
    RetryPolicy,
)

BASE_URL: str = 'https://patchstorage.test/api/beta'


class FakeCatalog:
    """
    Serves `page_count` list pages of two patches each, advertising `next` on all but the last.
    """

    def __init__(self, page_count: int, link: bool = True, body: object | None = None) -> None:
        self.page_count: int = page_count
        self.link: bool = link
        self.body: object | None = body
        self.requested: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        platform: str = request.url.params['platforms']
        page: int = int(request.url.params['page'])
        self.requested.append((platform, str(page)))
        headers: dict[str, str] = {}
        if self.link:
            rels: list[str] = []
            if page > 1:
                rels.append(f'<{BASE_URL}/patches/?platforms={platform}&page={page - 1}>; rel="prev"')
            if page < self.page_count:
                rels.append(f'<{BASE_URL}/patches/?platforms={platform}&page={page + 1}>; rel="next"')
            rels.append(f'<{BASE_URL}/patches/?platforms={platform}&page={self.page_count}>; rel="last"')
            headers['Link'] = ', '.join(rels)
        body: object = self.body
        if body is None:
            body = [{'id': page * 10 + i, 'slug': f'patch-{page}-{i}'} for i in range(2)]
        return httpx.Response(200, headers=headers, content=json.dumps(body).encode('utf-8'))


def make_pager(catalog: FakeCatalog) -> PatchCatalogPager:
    client = httpx.Client(transport=httpx.MockTransport(catalog))
    transport = ResilientTransport(client, RetryPolicy(), sleep=lambda _s: None, request_pause=0)
    return PatchCatalogPager(transport, PageRequest(platform=8008), base_url=BASE_URL)


class TestPatchCatalogPager(unittest.TestCase):
    """
    Tests PatchCatalogPager.
    """

    def test_yields_exactly_n_pages(self) -> None:
        """
        Checks that N pages are requested in order, then iteration stops.
        """
        catalog = FakeCatalog(page_count=3)
        pages: list[PageResult] = list(make_pager(catalog))
        self.assertEqual(len(pages), 3)
        self.assertEqual([p.has_next for p in pages], [True, True, False])
        self.assertEqual(catalog.requested, [('8008', '1'), ('8008', '2'), ('8008', '3')])

    def test_single_page(self) -> None:
        catalog = FakeCatalog(page_count=1)
        pages: list[PageResult] = list(make_pager(catalog))
        self.assertEqual(len(pages), 1)
        self.assertEqual(pages[0].entries[0], CatalogEntry(id=10, slug='patch-1-0'))

    def test_is_lazy(self) -> None:
        """
        Checks that a page is only requested when the consumer asks for it.
        """
        catalog = FakeCatalog(page_count=5)
        pager: PatchCatalogPager = make_pager(catalog)
        iterator = iter(pager)
        next(iterator)
        self.assertEqual(len(catalog.requested), 1)
        self.assertEqual(pager.request, PageRequest(platform=8008, page=2))

    def test_entries_flattened_in_order(self) -> None:
        catalog = FakeCatalog(page_count=2)
        computed: list[str] = [e.slug for e in make_pager(catalog).entries()]
        expected: list[str] = ['patch-1-0', 'patch-1-1', 'patch-2-0', 'patch-2-1']
        self.assertEqual(computed, expected)

    def test_exhausted_pager_yields_nothing_more(self) -> None:
        catalog = FakeCatalog(page_count=2)
        pager: PatchCatalogPager = make_pager(catalog)
        list(pager)
        self.assertEqual(list(pager), [])
        self.assertEqual(len(catalog.requested), 2)

    def test_missing_link_header_aborts(self) -> None:
        catalog = FakeCatalog(page_count=2, link=False)
        with self.assertRaises(MissingLinkHeaderError):
            list(make_pager(catalog))

    def test_non_array_body(self) -> None:
        catalog = FakeCatalog(page_count=1, body={'detail': 'oops'})
        with self.assertRaises(ResponseDecodeError):
            list(make_pager(catalog))

    def test_bad_entry(self) -> None:
        """
        Checks that entries with a negative id or an empty slug are rejected.
        """
        for body in ([{'id': -1, 'slug': 'x'}], [{'id': 1, 'slug': ''}], [{'id': '1', 'slug': 'x'}], [{'slug': 'x'}]):
            with self.subTest(body=body):
                with self.assertRaises(ResponseDecodeError):
                    list(make_pager(FakeCatalog(page_count=1, body=body)))

    def test_slug_must_be_plain_filename(self) -> None:
        """
        Checks that slugs that would escape the output directory are rejected.
        """
        for slug in ('../x', 'a/b', '/etc/passwd', 'a\\b', '..', '.'):
            with self.subTest(slug=slug):
                with self.assertRaises(ResponseDecodeError):
                    CatalogEntry.from_json({'id': 1, 'slug': slug})

    def test_slug_with_dots_is_fine(self) -> None:
        self.assertEqual(CatalogEntry.from_json({'id': 1, 'slug': 'v1.2-shimmer'}).slug, 'v1.2-shimmer')

    def test_bad_slug_aborts_paging(self) -> None:
        catalog = FakeCatalog(page_count=1, body=[{'id': 1, 'slug': '../escape'}])
        with self.assertRaises(ResponseDecodeError):
            list(make_pager(catalog))


if __name__ == '__main__':
    unittest.main()
