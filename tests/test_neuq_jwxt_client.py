"""neuq_jwxt_client 模块单元测试。"""

import asyncio
from types import SimpleNamespace
from urllib.parse import parse_qsl, urlencode

import httpx
import pytest

import neuq_jwxt_client
from conftest import (
    HOME_PATH,
    LOGIN_PAGE_HTML,
    LOGIN_PAGE_WITHOUT_SALT,
    LOGIN_PATH,
    SEARCH_PATH,
    SEARCH_RESULT_HTML,
    form_of,
)
from neuq_jwxt_client import (
    NeuqJwxtClient,
    SaltNotFoundError,
    build_search_form,
    extract_salt,
    hash_password,
    is_login_success,
    parse_free_classroom_html,
    parse_free_classroom_rows,
    sha1_hex,
)
from neuq_types import FreeClassroomQuery


class TestExtractSalt:
    """登录页 salt 提取测试."""

    def test_dotted_password_field(self):
        assert extract_salt(LOGIN_PAGE_HTML) == "abcd1234"

    def test_bracket_password_field(self):
        html = "<script>x = CryptoJS.SHA1('5f1e-77aa-' + form['password'].value);</script>"
        # salt 自身可以包含 '-'
        assert extract_salt(html) == "5f1e-77aa"

    def test_bracket_with_double_quotes(self):
        html = """<script>CryptoJS.SHA1('s4lt-' + form["password"].value)</script>"""
        assert extract_salt(html) == "s4lt"

    def test_first_matching_script_wins(self):
        html = (
            "<script>var noop;</script>"
            "<script>CryptoJS.SHA1('first-' + form.password.value)</script>"
            "<script>CryptoJS.SHA1('second-' + form.password.value)</script>"
        )
        assert extract_salt(html) == "first"

    def test_missing_salt_raises(self):
        with pytest.raises(SaltNotFoundError):
            extract_salt(LOGIN_PAGE_WITHOUT_SALT)

    def test_pattern_outside_script_is_ignored(self):
        html = "<p>CryptoJS.SHA1('abc-' + form.password.value)</p>"
        with pytest.raises(SaltNotFoundError):
            extract_salt(html)

    @pytest.mark.parametrize("html", ["", "   "])
    def test_empty_page_raises(self, html):
        with pytest.raises(SaltNotFoundError):
            extract_salt(html)


class TestHashPassword:
    """登录哈希测试."""

    def test_sha1_known_vectors(self):
        assert sha1_hex("abc") == "a9993e364706816aba3e25717850c26c9cd0d89d"
        assert sha1_hex("The quick brown fox jumps over the lazy dog") == \
            "2fd4e1c67a2d28fced849ee1bb76e7391b93eb12"

    def test_salted_hash_matches_reference(self):
        expected = "00c956935d529e47b97705e4ee2e2afa98803465"
        assert hash_password("abcd1234", "secret") == expected

    def test_deterministic(self):
        assert hash_password("salt", "pw") == hash_password("salt", "pw")
        assert hash_password("salt", "pw") != hash_password("salt", "pw2")

    def test_hex_format(self):
        digest = hash_password("salt", "密码")
        assert len(digest) == 40
        assert digest == digest.lower()
        int(digest, 16)


class TestIsLoginSuccess:
    """登录结果判定测试."""

    def test_home_url(self):
        assert is_login_success("https://jwxt.neuq.edu.cn/eams/homeExt.action")

    def test_home_url_object(self):
        assert is_login_success(httpx.URL("https://jwxt.neuq.edu.cn/eams/homeExt.action?x=1"))

    def test_back_on_login_page(self):
        assert not is_login_success("https://jwxt.neuq.edu.cn/eams/loginExt.action")


class TestBuildSearchForm:
    """查询表单序列化测试."""

    def test_query_object(self):
        query = FreeClassroomQuery.for_period("工学馆", "2025-01-01", 1)
        form = build_search_form(query)
        assert form["classroom.building.id"] == "1"
        assert form["timeBegin"] == "1"
        assert form["timeEnd"] == "1"

    def test_plain_mapping_is_stringified(self):
        form = build_search_form({"timeBegin": 1, "classroom.name": "", "pageSize": 500})
        assert form == {"timeBegin": "1", "classroom.name": "", "pageSize": "500"}

    def test_round_trip_through_urlencoding(self):
        form = build_search_form(FreeClassroomQuery.for_period("科技楼", "2025-03-09", 3, 4))
        encoded = urlencode(form)
        assert dict(parse_qsl(encoded, keep_blank_values=True)) == form


class TestParseFreeClassroomHtml:
    """结果表解析测试."""

    def test_example_rows(self):
        assert parse_free_classroom_html(SEARCH_RESULT_HTML) == ["GX101", "GX102", ""]

    def test_row_cells_are_normalized(self):
        rows = parse_free_classroom_rows(SEARCH_RESULT_HTML)
        assert rows[1] == ["2", "GX102", "..."]

    def test_nested_markup_and_whitespace(self):
        html = """<table class="gridtable"><tbody>
            <tr><td>1</td><td><a href="#"> 工学馆
                 101 </a></td><td>60</td></tr>
        </tbody></table>"""
        assert parse_free_classroom_html(html) == ["工学馆 101"]

    def test_short_rows_are_dropped(self):
        html = """<table class="gridtable"><tbody>
            <tr><td colspan="3">没有数据</td></tr>
            <tr><td>1</td><td>GX201</td></tr>
            <tr></tr>
        </tbody></table>"""
        assert parse_free_classroom_html(html) == ["GX201"]

    def test_n_rows_give_n_names(self):
        body = "".join(f"<tr><td>{i}</td><td> R{i} </td><td>x</td></tr>" for i in range(25))
        html = f'<table class="gridtable"><tbody>{body}</tbody></table>'
        assert parse_free_classroom_html(html) == [f"R{i}" for i in range(25)]

    def test_extra_css_classes(self):
        html = '<table class="gridtable striped"><tbody><tr><td>1</td><td>A1</td></tr></tbody></table>'
        assert parse_free_classroom_html(html) == ["A1"]

    def test_other_tables_are_ignored(self):
        html = """<table class="grid"><tbody><tr><td>1</td><td>NOPE</td></tr></tbody></table>
                  <table class="gridtable"><tbody><tr><td>1</td><td>YES</td></tr></tbody></table>"""
        assert parse_free_classroom_html(html) == ["YES"]

    @pytest.mark.parametrize("html", ["", "<html><body>系统繁忙</body></html>"])
    def test_missing_table_gives_empty_list(self, html):
        assert parse_free_classroom_html(html) == []


class TestNeuqJwxtClient:
    """使用 MockTransport 的端到端测试."""

    def test_login_posts_salted_hash(self, portal):
        requests, transport_factory = portal

        async def run():
            async with NeuqJwxtClient(request_delay=0, transport=transport_factory()) as client:
                return await client.login("202012345", "secret")

        assert asyncio.run(run()) is True

        post = next(r for r in requests if r.method == "POST" and r.url.path == LOGIN_PATH)
        assert form_of(post) == {
            "username": "202012345",
            "password": "00c956935d529e47b97705e4ee2e2afa98803465",
        }
        # 登录页下发的 cookie 在后续请求中携带
        assert "JSESSIONID=abc123" in post.headers.get("cookie", "")
        assert requests[-1].url.path == HOME_PATH

    def test_login_failure_when_not_redirected_home(self, portal):
        requests, transport_factory = portal

        async def run():
            async with NeuqJwxtClient(request_delay=0,
                                      transport=transport_factory(landing_path=LOGIN_PATH)) as client:
                return await client.login("202012345", "wrong")

        assert asyncio.run(run()) is False

    def test_login_without_salt_raises_before_posting(self, portal):
        requests, transport_factory = portal

        async def run():
            async with NeuqJwxtClient(request_delay=0,
                                      transport=transport_factory(login_page=LOGIN_PAGE_WITHOUT_SALT)) as client:
                await client.login("202012345", "secret")

        with pytest.raises(SaltNotFoundError):
            asyncio.run(run())
        assert all(r.method == "GET" for r in requests)

    def test_transport_errors_propagate(self):
        def handler(request):
            raise httpx.ConnectError("dns failure", request=request)

        async def run():
            async with NeuqJwxtClient(request_delay=0, transport=httpx.MockTransport(handler)) as client:
                await client.login("u", "p")

        with pytest.raises(httpx.ConnectError):
            asyncio.run(run())

    def test_get_free_classroom(self, portal):
        requests, transport_factory = portal
        query = FreeClassroomQuery.for_period("工学馆", "2025-01-01", 2)

        async def run():
            async with NeuqJwxtClient(request_delay=0, transport=transport_factory()) as client:
                await client.login("202012345", "secret")
                return await client.get_free_classroom(query)

        assert asyncio.run(run()) == ["GX101", "GX102", ""]

        search = next(r for r in requests if r.url.path == SEARCH_PATH)
        assert search.method == "POST"
        assert form_of(search) == query.to_form()
        assert "JSESSIONID=abc123" in search.headers.get("cookie", "")

    def test_requests_use_base_origin(self, portal):
        requests, transport_factory = portal

        async def run():
            async with NeuqJwxtClient(request_delay=0, transport=transport_factory()) as client:
                await client.login("u", "p")

        asyncio.run(run())
        assert str(requests[0].url) == "https://jwxt.neuq.edu.cn/eams/loginExt.action"

    def test_delay_before_login_and_query(self, portal, monkeypatch):
        requests, transport_factory = portal
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        monkeypatch.setattr(neuq_jwxt_client, "asyncio", SimpleNamespace(sleep=fake_sleep))

        async def run():
            async with NeuqJwxtClient(transport=transport_factory()) as client:
                await client.login("u", "p")
                await client.get_free_classroom({"timeBegin": 1})

        asyncio.run(run())
        assert sleeps == [3.0, 3.0]
