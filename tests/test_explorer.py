"""
探索全体（explorer.explorer）、レポート出力、設定読み込み、CLIのテスト
"""
import asyncio
import json
import logging
import pytest
import sys
import os
import yaml

# プロジェクトルートをPythonパスに追加
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from explorer import DomExplorer, ExplorerConfig, explore, parse_html
from explorer.config import load_config
from explorer.extractors import extract_details
from explorer.main import build_parser, main
from explorer.report import compute_statistics, export_report, summarize


def make_document(body: str):
    return parse_html(f"<html><head><title>Test</title></head><body>{body}</body></html>",
                      url="https://example.com/page")


class TestExploration:
    """探索全体のシナリオテスト"""

    @pytest.mark.asyncio
    async def test_disclosure_and_input(self):
        """summaryとテキスト入力の2回の操作、入力値は元に戻る"""
        doc = make_document(
            '<details id="d"><summary>More</summary><p>inside</p></details>'
            '<input id="q" value="original">'
        )

        report = await explore(doc)

        assert report.metadata["total_interactions"] == 2
        assert report.metadata["initial_triggers"] == 2
        assert doc.get_element_by_id("d").open is True
        assert doc.get_element_by_id("q").value == "original"
        assert report.errors == []

    @pytest.mark.asyncio
    async def test_disabled_input_not_triggered(self):
        """無効な入力はトリガーにならない"""
        doc = make_document(
            '<details><summary>More</summary><p>inside</p></details>'
            '<input id="q" disabled>'
        )

        report = await explore(doc)

        assert report.metadata["total_interactions"] == 1
        assert any(element.id == "q" for element in report.elements)

    @pytest.mark.asyncio
    async def test_late_insertion_captured_and_triggered(self):
        """探索中に遅れて挿入されたボタンも記録・操作される"""
        doc = make_document(
            '<button type="button">one</button><button type="button">two</button>'
            '<button type="button">three</button>'
        )
        late = doc.create_element("button", {"id": "late", "type": "button"})
        clicks = []
        late.add_event_listener("click", lambda e: clicks.append("late"))
        asyncio.get_running_loop().call_later(0.3, doc.body.append_child, late)

        explorer = DomExplorer(doc)
        report = await explorer.run()

        assert any(element.id == "late" for element in report.elements)
        assert explorer.context.registry.has_done_trigger(late)
        assert clicks == ["late"]
        assert report.metadata["total_interactions"] == 4
        assert report.metadata["done_triggers"] == 4

    @pytest.mark.asyncio
    async def test_revealed_panel_explored(self):
        """クリックで表示されたパネル内のトリガーも操作される"""
        doc = make_document('<button id="open" type="button">open</button><div id="slot"></div>')
        seen = []

        async def reveal(event):
            await asyncio.sleep(0)
            panel = doc.create_element("div", {"id": "panel"})
            inner = doc.create_element("input", {"id": "inner", "type": "checkbox"})
            inner.add_event_listener("change", lambda e: seen.append("inner"))
            panel.append_child(inner)
            doc.get_element_by_id("slot").append_child(panel)

        doc.get_element_by_id("open").add_event_listener("click", reveal)

        report = await explore(doc, ExplorerConfig(wait_ms=20))

        assert {"panel", "inner"} <= {element.id for element in report.elements}
        assert seen == ["inner"]
        assert doc.get_element_by_id("inner").checked is False

    @pytest.mark.asyncio
    async def test_extraction_error_recorded_once(self):
        """抽出の失敗は1件だけ記録され探索は続く"""
        doc = make_document('<button id="bad" type="button">x</button><button id="ok" type="button">y</button>')

        def extract(el):
            if el.id == "bad":
                raise ValueError("cannot measure")
            return extract_details(el)

        report = await explore(doc, ExplorerConfig(wait_ms=0), extract=extract)

        assert len(report.errors) == 1
        assert report.errors[0].element == "button#bad"
        assert report.metadata["errors"] == 1
        assert report.metadata["total_interactions"] == 2
        assert [element.id for element in report.elements] == [None, "ok"]

    @pytest.mark.asyncio
    async def test_iteration_ceiling_still_reports(self):
        """上限に達してもレポートが作られ監視は止まる"""
        doc = make_document('<div id="root"></div>')
        root = doc.get_element_by_id("root")

        def spawn(event):
            button = doc.create_element("button", {"type": "button"})
            button.add_event_listener("click", spawn)
            root.append_child(button)

        first = doc.create_element("button", {"type": "button"})
        first.add_event_listener("click", spawn)
        root.append_child(first)

        explorer = DomExplorer(doc, ExplorerConfig(max_iterations=3, wait_ms=10))
        report = await explorer.run()

        assert report.metadata["total_interactions"] == 3
        assert not explorer.watcher.active
        # body, root, the initial button and one spawned per click
        assert len(report.elements) == 6

    @pytest.mark.asyncio
    async def test_normalisation(self):
        """hidden属性の除去とdetailsの展開"""
        doc = make_document(
            '<details id="d"><p>x</p></details>'
            '<section id="s" hidden><span>y</span></section>'
        )

        report = await explore(doc, ExplorerConfig(wait_ms=0))

        assert doc.get_element_by_id("d").open is True
        assert not doc.get_element_by_id("s").has_attribute("hidden")
        visible = {element.id: element.details.visibility["visible"] for element in report.elements}
        assert visible["s"] is True

    @pytest.mark.asyncio
    async def test_normalisation_failure_recorded(self, monkeypatch):
        """正規化の失敗は記録され探索は続く"""
        doc = make_document('<button id="b" type="button">b</button>')

        def broken(root, pierce=True):
            raise RuntimeError("walk failed")

        monkeypatch.setattr("explorer.explorer.iter_elements", broken)

        report = await explore(doc, ExplorerConfig(wait_ms=0))

        assert len(report.errors) == 1
        assert "walk failed" in report.errors[0].error
        assert report.metadata["total_interactions"] == 1

    @pytest.mark.asyncio
    async def test_debug_level_restored_after_run(self):
        """debug指定のログレベルは実行後に元へ戻る"""
        package_logger = logging.getLogger("explorer")
        package_logger.setLevel(logging.WARNING)
        try:
            await explore(make_document('<p>x</p>'), ExplorerConfig(wait_ms=0, debug=True))

            assert package_logger.level == logging.WARNING
        finally:
            package_logger.setLevel(logging.NOTSET)

    @pytest.mark.asyncio
    async def test_no_restoration_left_after_run(self):
        """実行終了時に遅延復元は残らず、値は元に戻っている"""
        doc = make_document('<input id="q" value="original"><input id="c" type="checkbox">')
        explorer = DomExplorer(doc, ExplorerConfig(wait_ms=10))

        await explorer.run()

        assert explorer.context.deferred == set()
        assert doc.get_element_by_id("q").value == "original"
        assert doc.get_element_by_id("c").checked is False

    @pytest.mark.asyncio
    async def test_metadata(self):
        """メタデータの内容"""
        doc = make_document('<p>x</p>')

        report = await explore(doc, ExplorerConfig(max_iterations=10, wait_ms=0))
        meta = report.metadata

        assert meta["url"] == "https://example.com/page"
        assert meta["title"] == "Test"
        assert meta["total_elements"] == 2
        assert meta["viewport"] == {"width": 1280, "height": 720}
        assert meta["config"] == {"max_iterations": 10, "wait_ms": 0, "debug": False}
        assert meta["execution_time"].endswith("ms")
        assert summarize(report)[0] == "DOM collection complete!"


class TestReport:
    """統計とファイル出力のテスト"""

    @pytest.mark.asyncio
    async def test_statistics(self):
        """タグ・型・カテゴリ別の集計"""
        doc = make_document(
            '<form><input type="email" required><input><select disabled></select>'
            '<button type="button">b</button></form><a href="#x">x</a>'
        )

        report = await explore(doc, ExplorerConfig(wait_ms=0))
        stats = compute_statistics(report.elements)

        assert stats == report.statistics
        assert stats["by_tag"] == {"body": 1, "form": 1, "input": 2, "select": 1, "button": 1, "a": 1}
        assert stats["by_type"] == {"none": 5, "email": 1, "button": 1}
        assert stats["form_elements"] == 4
        assert stats["interactive_elements"] == 5
        assert stats["required_elements"] == 1
        assert stats["disabled_elements"] == 1

    @pytest.mark.asyncio
    async def test_export_json_and_yaml(self, tmp_path):
        """JSONとYAMLで出力できる"""
        doc = make_document('<select id="s"><option>a</option></select>')
        report = await explore(doc, ExplorerConfig(wait_ms=0))

        json_path = export_report(report, tmp_path / "dom.json")
        yaml_path = export_report(report, tmp_path / "dom.yaml", fmt="yaml")

        from_json = json.loads(json_path.read_text(encoding="utf-8"))
        from_yaml = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
        assert from_json == from_yaml
        assert set(from_json) == {"metadata", "elements", "errors", "statistics"}
        select = next(element for element in from_json["elements"] if element["id"] == "s")
        assert select["options"][0]["text"] == "a"

    @pytest.mark.asyncio
    async def test_export_unknown_format(self, tmp_path):
        """未対応の形式はエラー"""
        report = await explore(make_document('<p>x</p>'), ExplorerConfig(wait_ms=0))

        with pytest.raises(ValueError):
            export_report(report, tmp_path / "dom.xml", fmt="xml")


class TestConfig:
    """設定のテスト"""

    def test_defaults(self):
        """既定値"""
        config = ExplorerConfig()

        assert config.max_iterations == 1000
        assert config.wait_ms == 200
        assert config.debug is False

    @pytest.mark.parametrize("values", [
        {"max_iterations": 0},
        {"max_iterations": "10"},
        {"wait_ms": -1},
        {"wait_ms": True},
    ])
    def test_validation(self, values):
        """不正な値は拒否される"""
        with pytest.raises(ValueError):
            ExplorerConfig(**values)

    def test_load_from_yaml(self, tmp_path):
        """YAMLファイルから読み込み、明示指定が優先される"""
        path = tmp_path / "explorer.yaml"
        path.write_text("maxIterations: 50\nwait_ms: 100\ndebug: true\n", encoding="utf-8")

        config = load_config(path, wait_ms=5, debug=None)

        assert config.max_iterations == 50
        assert config.wait_ms == 5
        assert config.debug is True

    def test_unknown_key_rejected(self, tmp_path):
        """未知のキーは拒否される"""
        path = tmp_path / "explorer.yaml"
        path.write_text("max_iterations: 5\nretries: 3\n", encoding="utf-8")

        with pytest.raises(ValueError):
            load_config(path)

    def test_non_mapping_rejected(self, tmp_path):
        """マッピング以外は拒否される"""
        path = tmp_path / "explorer.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")

        with pytest.raises(ValueError):
            load_config(path)


class TestCli:
    """コマンドラインのテスト"""

    def test_parser_defaults(self):
        """引数の既定値"""
        args = build_parser().parse_args(["page.html"])

        assert args.max_iterations is None
        assert args.debug is None
        assert args.output == "dom.json"
        assert args.format == "json"

    @pytest.mark.asyncio
    async def test_main_with_local_file(self, tmp_path):
        """ローカルHTMLを探索してレポートを書き出す"""
        page = tmp_path / "page.html"
        page.write_text(
            "<html><head><title>Local</title></head>"
            "<body><button type='button'>go</button></body></html>", encoding="utf-8")
        out = tmp_path / "report.yaml"

        report = await main([str(page), "--output", str(out), "--format", "yaml", "--wait-ms", "0"])

        assert out.exists()
        data = yaml.safe_load(out.read_text(encoding="utf-8"))
        assert data["metadata"]["title"] == "Local"
        assert data["metadata"]["total_interactions"] == 1
        assert report.metadata["url"].startswith("file://")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
