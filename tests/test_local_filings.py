from __future__ import annotations

import asyncio
import json

from fundamentals_rating.infrastructure.data_providers.local_filings import LocalFilingFetcher


def test_lists_filings_from_file_names(tmp_path):
    (tmp_path / "10-Q_2024-05-02.htm").write_text("<p>Quarterly &amp; report</p>", encoding="utf-8")
    (tmp_path / "10-K-A_2023-03-01.txt").write_text("Amended annual report", encoding="utf-8")
    (tmp_path / "10-K_2024-02-01.txt").write_text("Annual report", encoding="utf-8")
    (tmp_path / "notes.md").write_text("ignored", encoding="utf-8")
    (tmp_path / "random.txt").write_text("ignored", encoding="utf-8")
    fetcher = LocalFilingFetcher(tmp_path)

    metas = asyncio.run(fetcher.list_filings("ABC", ("10-Q", "10-K", "10-K/A"), 10))

    assert [(meta.form, meta.filed) for meta in metas] == [
        ("10-Q", "2024-05-02"),
        ("10-K", "2024-02-01"),
        ("10-K/A", "2023-03-01"),
    ]
    assert len(asyncio.run(fetcher.list_filings("ABC", ("10-Q", "10-K"), 1))) == 1

    document = asyncio.run(fetcher.fetch_document(metas[0]))
    assert "Quarterly & report" in document.text
    assert "<p>" not in document.text
    assert document.doc_url.startswith("file://")


def test_manifest_takes_precedence(tmp_path):
    (tmp_path / "annual.htm").write_text("Annual", encoding="utf-8")
    (tmp_path / "10-Q_2024-05-02.htm").write_text("Quarterly", encoding="utf-8")
    manifest = [
        {"form": "10-k", "filed": "2024-02-01", "file": "annual.htm", "accession": "0001-24-000001"},
        {"form": "8-K", "filed": "2024-03-01"},
    ]
    (tmp_path / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")

    metas = asyncio.run(LocalFilingFetcher(tmp_path).list_filings("ABC", ("10-K", "10-Q", "8-K"), 10))

    assert len(metas) == 1
    assert metas[0].form == "10-K"
    assert metas[0].accession == "0001-24-000001"
