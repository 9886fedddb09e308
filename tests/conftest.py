"""测试共用的教务系统假页面与 httpx.MockTransport 处理函数。"""

from urllib.parse import parse_qs

import httpx
import pytest

LOGIN_PAGE_HTML = """<!DOCTYPE html>
<html>
<head>
<script type="text/javascript" src="/eams/static/scripts/sha1.js"></script>
<script type="text/javascript">
    function checkLogin(form) {
        if (!form['username'].value) { return false; }
        form['password'].value = CryptoJS.SHA1('abcd1234-' + form.password.value);
        return true;
    }
</script>
</head>
<body><form id="loginForm" method="post" action="/eams/loginExt.action"></form></body>
</html>
"""

LOGIN_PAGE_WITHOUT_SALT = """<html><head><script>var a = 1;</script></head><body></body></html>"""

SEARCH_RESULT_HTML = """<html><body>
<table class="gridtable" id="grid">
  <thead><tr><th>序号</th><th>名称</th><th>容量</th></tr></thead>
  <tbody>
    <tr><td>1</td><td>GX101</td><td>...</td></tr>
    <tr><td>2</td><td>
        GX102
    </td><td>...</td></tr>
    <tr><td>3</td><td></td><td>...</td></tr>
  </tbody>
</table>
</body></html>
"""

HOME_PATH = "/eams/homeExt.action"
LOGIN_PATH = "/eams/loginExt.action"
SEARCH_PATH = "/eams/classroom/apply/free!search.action"


def form_of(request: httpx.Request) -> dict:
    """把表单请求体解析为 {key: value}。"""
    parsed = parse_qs(request.content.decode("utf-8"), keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items()}


def make_portal_handler(requests,
                        login_page=LOGIN_PAGE_HTML,
                        landing_path=HOME_PATH,
                        search_html=SEARCH_RESULT_HTML,
                        fail_periods=()):
    """
    模拟教务系统的处理函数。

    requests: 记录所有收到的请求。
    landing_path: 登录 POST 之后 302 跳转的目标。
    fail_periods: 这些 timeBegin 的查询请求抛出 ConnectError。
    """
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path

        if path == LOGIN_PATH and request.method == "GET":
            return httpx.Response(
                200, text=login_page,
                headers={"Set-Cookie": "JSESSIONID=abc123; Path=/eams"},
            )
        if path == LOGIN_PATH and request.method == "POST":
            return httpx.Response(302, headers={"Location": landing_path})
        if path == HOME_PATH:
            return httpx.Response(200, text="<html><body>home</body></html>")
        if path == SEARCH_PATH:
            if form_of(request).get("timeBegin") in {str(p) for p in fail_periods}:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, text=search_html)
        return httpx.Response(404, text="not found")

    return handler


@pytest.fixture
def portal():
    """返回 (已记录的请求列表, 处理函数工厂)。"""
    requests = []

    def factory(**kwargs):
        return httpx.MockTransport(make_portal_handler(requests, **kwargs))

    return requests, factory
