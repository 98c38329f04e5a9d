import image_crawler
from image_crawler import CrawlError, CrawlResult, CrawlStats, ImageRecord


def _fake_run(records, calls):
    def run(root_url, **kwargs):
        calls.append((root_url, kwargs))
        return CrawlResult(records=list(records), pages=[root_url], stats=CrawlStats())

    return run


def test_main_writes_csv(monkeypatch, tmp_path, capsys):
    calls = []
    rec = ImageRecord(url="https://example.com/a.png", width=1, height=2, size_kb=3, source_page="https://example.com/")
    monkeypatch.setattr(image_crawler, "run_crawl", _fake_run([rec], calls))
    out = tmp_path / "image-detailsPlus.csv"

    assert image_crawler.main(["--start", "https://example.com/", "--out-csv", str(out)]) == 0

    assert out.read_text(encoding="utf-8").splitlines()[1] == "https://example.com/a.png,1,2,3,https://example.com/"
    root_url, kwargs = calls[0]
    assert root_url == "https://example.com/"
    assert kwargs["headless"] is True
    assert kwargs["max_links"] == 10
    assert "Wrote 1 images" in capsys.readouterr().out


def test_main_defaults_to_configured_start_url(monkeypatch, tmp_path):
    calls = []
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(image_crawler, "run_crawl", _fake_run([], calls))

    assert image_crawler.main([]) == 0

    assert calls[0][0] == image_crawler.DEFAULT_START_URL
    assert not (tmp_path / image_crawler.DEFAULT_OUTPUT_CSV).exists()


def test_main_returns_1_on_fatal_error(monkeypatch, tmp_path):
    def run(root_url, **kwargs):
        raise CrawlError("Failed to launch Chromium")

    monkeypatch.setattr(image_crawler, "run_crawl", run)
    out = tmp_path / "x.csv"
    assert image_crawler.main(["--out-csv", str(out)]) == 1
    assert not out.exists()
