"""
要素パス（explorer.paths）のテスト
"""
import pytest
import sys
import os

# プロジェクトルートをPythonパスに追加
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from explorer.loader import parse_html
from explorer.paths import css_escape, element_path


class TestElementPath:
    """element_pathのテスト"""

    def test_classes_and_position(self):
        """クラスと同名兄弟の位置が含まれる"""
        doc = parse_html('<div class="card main"><ul><li>a</li><li>b</li><li>c</li></ul></div>')
        items = doc.body.children[0].children[0].children

        assert element_path(items[2]) == "div.card.main > ul > li:nth-of-type(3)"

    def test_id_stops_path(self):
        """IDを持つ要素でパスが止まる"""
        doc = parse_html('<section><ul><li id="x">b</li></ul></section>')

        assert element_path(doc.get_element_by_id("x")) == "li#x"

    def test_body_and_none(self):
        """bodyとNoneは'body'"""
        doc = parse_html("<p>x</p>")

        assert element_path(doc.body) == "body"
        assert element_path(None) == "body"

    def test_shadow_content_prefixed_with_host(self):
        """シャドウ内の要素はホストのパスが前置される"""
        doc = parse_html('<div id="host"></div>')
        host = doc.get_element_by_id("host")
        span = doc.create_element("span")
        host.attach_shadow().append_child(span)

        assert element_path(span) == "div#host >> span"

    def test_paths_can_collide(self):
        """構造変化後は別ノードが同じパスを持ちうる"""
        doc = parse_html('<div><p>first</p></div>')
        container = doc.body.children[0]
        first = container.children[0]
        before = element_path(first)

        first.remove()
        second = doc.create_element("p")
        container.append_child(second)

        assert element_path(second) == before
        assert second is not first

    def test_css_escape(self):
        """CSS識別子のエスケープ"""
        assert css_escape("a.b") == "a\\.b"
        assert css_escape("1a") == "\\31 a"
        assert css_escape("plain-id_2") == "plain-id_2"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
