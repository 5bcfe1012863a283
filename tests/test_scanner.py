"""
スキャナー（explorer.scanner）と抽出処理（explorer.extractors）のテスト
"""
import pytest
import sys
import os

# プロジェクトルートをPythonパスに追加
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from explorer.dom import iter_elements
from explorer.extractors import extract_details, resolve_form_context, resolve_label
from explorer.loader import parse_html
from explorer.models import ElementDetails, ExplorationContext
from explorer.scanner import Scanner


def make_scanner(html: str, **collaborators):
    doc = parse_html(html, url="https://example.com/app/page")
    context = ExplorationContext(document=doc)
    return doc, context, Scanner(context, **collaborators)


class TestScan:
    """scanの走査順と一意性のテスト"""

    def test_each_element_captured_once(self):
        """全要素が1回ずつ記録され、再スキャンで増えない"""
        doc, context, scanner = make_scanner('<div><p>a</p><p>b</p></div><span>c</span>')
        expected = len(list(iter_elements(doc.body)))

        scanner.scan(doc.body)
        assert len(context.results) == expected

        scanner.scan(doc.body)
        scanner.scan(doc.body.children[0])
        assert len(context.results) == expected

    def test_pre_order_with_shadow_content(self):
        """自身 → シャドウ内容 → 子の順"""
        doc, context, scanner = make_scanner(
            '<div id="host"><template shadowrootmode="open"><i id="s"></i></template><b id="c"></b></div>'
        )

        scanner.scan(doc.body)

        assert [r.tag for r in context.results] == ["body", "div", "i", "b"]

    def test_text_and_comments_skipped(self):
        """テキストとコメントは記録しない"""
        doc, context, scanner = make_scanner('<p>text<!-- note --></p>')

        scanner.scan(doc.body)

        assert [r.tag for r in context.results] == ["body", "p"]
        assert context.results[1].inner_text == "text"

    def test_extraction_failure_recorded_once(self):
        """抽出失敗は1件のエラーとなり兄弟要素は記録される"""
        doc, context, scanner = make_scanner(
            '<div><a id="bad" href="#x">x</a><span id="ok">y</span></div>'
        )

        def broken():
            raise RuntimeError("boom")

        bad = doc.get_element_by_id("bad")
        bad.get_bounding_client_rect = broken

        scanner.scan(doc.body)

        assert len(context.errors) == 1
        assert "boom" in context.errors[0].error
        assert context.errors[0].element == "a#bad"
        assert context.errors[0].stack
        assert [r.tag for r in context.results] == ["body", "div", "span"]
        assert context.registry.has_captured(bad)

    def test_injected_collaborators(self):
        """抽出処理は差し替え可能"""
        doc, context, scanner = make_scanner('<p>a</p>', label=lambda el: f"label:{el.tag_name}")

        scanner.scan(doc.body)

        assert [r.label for r in context.results] == ["label:body", "label:p"]

    def test_deep_tree(self):
        """深い木でも全要素が記録されエラーにならない"""
        depth = 1200
        html = "".join(f'<div id="d{i}">' for i in range(depth)) + "</div>" * depth
        doc, context, scanner = make_scanner(
            html,
            extract=lambda el: ElementDetails({}, {}, {}, {}),
            label=lambda el: None,
            form_context=lambda el: None,
        )

        scanner.scan(doc.body)

        assert context.errors == []
        assert len(context.results) == depth + 1
        assert context.results[-1].id == f"d{depth - 1}"


class TestCapturedElement:
    """記録内容のテスト"""

    def capture(self, html: str, element_id: str):
        doc, context, scanner = make_scanner(html)
        scanner.scan(doc.body)
        return next(r for r in context.results if r.id == element_id)

    def test_checkbox_state(self):
        """チェックボックスのchecked"""
        record = self.capture('<input type="checkbox" id="c" checked required>', "c")

        assert record.type == "checkbox"
        assert record.checked is True
        assert record.required is True
        assert record.selected is None

    def test_anchor_fields(self):
        """リンクのhrefは解決済みURL"""
        record = self.capture('<a id="l" href="../docs" target="_blank">Docs</a>', "l")

        assert record.href == "https://example.com/docs"
        assert record.target == "_blank"
        assert record.inner_text == "Docs"
        assert record.checked is None

    def test_select_extras(self):
        """selectのoption一覧"""
        record = self.capture(
            '<select id="s" name="size"><option value="s">Small</option>'
            '<option value="l" selected disabled>Large</option></select>', "s")

        assert record.value == "l"
        assert record.name == "size"
        assert record.extras["options"][1] == {
            "index": 1, "value": "l", "text": "Large", "selected": True, "disabled": True,
        }
        assert record.extras["multiple"] is False

    def test_form_context_and_label(self):
        """所属フォームとラベル"""
        record = self.capture(
            '<form id="f" action="/submit" method="POST"><label for="e">Email</label>'
            '<input id="e" type="email" placeholder="you@example.com" maxlength="64"></form>', "e")

        assert record.label == "Email"
        assert record.form_context.action == "https://example.com/submit"
        assert record.form_context.method == "post"
        assert record.form_context.id == "f"
        assert record.placeholder == "you@example.com"
        assert record.extras["max_length"] == 64
        assert record.extras["min_length"] is None

    def test_attributes_are_read_only(self):
        """記録は作成後に変更できない"""
        record = self.capture('<div id="d" data-x="1"></div>', "d")

        assert record.attributes == {"id": "d", "data-x": "1"}
        with pytest.raises(TypeError):
            record.attributes["data-x"] = "2"
        with pytest.raises(AttributeError):
            record.tag = "span"

    def test_extras_are_deeply_read_only(self):
        """extras内のリストや辞書も変更できない"""
        record = self.capture('<select id="s"><option value="a">A</option></select>', "s")
        options = record.extras["options"]

        assert isinstance(options, tuple)
        with pytest.raises(AttributeError):
            options.append({"value": "b"})
        with pytest.raises(TypeError):
            options[0]["text"] = "mutated"
        with pytest.raises(TypeError):
            record.extras["multiple"] = True
        assert record.to_dict()["options"][0]["text"] == "A"

    def test_to_dict(self):
        """辞書化"""
        record = self.capture('<textarea id="t" rows="4">hello</textarea>', "t")

        data = record.to_dict()

        assert data["tag"] == "textarea"
        assert data["value"] == "hello"
        assert data["rows"] == 4
        assert data["cols"] == 20
        assert data["details"]["visibility"]["visible"] is True


class TestExtractors:
    """既定の抽出処理のテスト"""

    def test_visibility_from_rendering(self):
        """描画状態から可視性を判定"""
        doc = parse_html('<p id="shown">x</p><p id="gone" hidden>y</p><p id="ghost" style="visibility: hidden">z</p>')

        assert extract_details(doc.get_element_by_id("shown")).visibility["visible"] is True
        assert extract_details(doc.get_element_by_id("gone")).visibility["visible"] is False
        assert extract_details(doc.get_element_by_id("ghost")).visibility["visible"] is False

    def test_visibility_from_layout(self):
        """ホスト提供のレイアウトがあれば矩形で判定"""
        from explorer.dom import DOMRect
        doc = parse_html('<p id="p">x</p>')
        p = doc.get_element_by_id("p")
        p.layout = DOMRect(10.4, 20.6, 0, 30)

        details = extract_details(p)

        assert details.visibility["visible"] is False
        assert details.position["x"] == 10
        assert details.position["y"] == 21

    def test_accessibility(self):
        """ARIA属性とtabIndex"""
        doc = parse_html('<div id="d" role="button" aria-expanded="false" tabindex="0">x</div>')

        accessibility = extract_details(doc.get_element_by_id("d")).accessibility

        assert accessibility["aria_role"] == "button"
        assert accessibility["aria_expanded"] == "false"
        assert accessibility["tab_index"] == 0

    def test_label_fallbacks(self):
        """ラベル解決の優先順位"""
        doc = parse_html(
            '<input id="a" aria-label=" Search ">'
            '<input id="b" placeholder="Name">'
            '<div id="c">none</div>'
        )

        assert resolve_label(doc.get_element_by_id("a")) == "Search"
        assert resolve_label(doc.get_element_by_id("b")) == "[Placeholder: Name]"
        assert resolve_label(doc.get_element_by_id("c")) is None

    def test_no_form_context(self):
        """フォーム外ならNone"""
        doc = parse_html('<input id="a">')

        assert resolve_form_context(doc.get_element_by_id("a")) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
