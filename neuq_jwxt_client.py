import asyncio
import logging
import re
from typing import Dict, List, Mapping, Optional, Union

import httpx
from Crypto.Hash import SHA1
from lxml import etree

from neuq_types import FreeClassroomQuery

logger = logging.getLogger(__name__)

BASE_URL = "https://jwxt.neuq.edu.cn/eams"
LOGIN_PATH = "/loginExt.action"
FREE_CLASSROOM_SEARCH_PATH = "/classroom/apply/free!search.action"
# 登录成功后重定向的落地页
HOME_PATH_MARKER = "homeExt.action"
# 两次操作间隔过短时教务系统会提示 "请不要过快点击"
DEFAULT_REQUEST_DELAY = 3.0

# 登录页内联脚本: CryptoJS.SHA1('<salt>-' + form['password'].value)
SALT_PATTERN = re.compile(
    r"CryptoJS\.SHA1\('([^']+)-'\s*\+\s*form(?:\[[^\]]*?password[^\]]*?\]|\.password)\.value\)"
)


class SaltNotFoundError(Exception):
    """登录页中找不到密码加盐脚本，无法计算登录哈希。"""


def extract_salt(page_html: str) -> str:
    """
    从登录页 HTML 的内联 <script> 中提取 salt。

    参数:
        page_html (str): 登录页 HTML.

    返回:
        str: salt。所有脚本都不匹配时抛出 SaltNotFoundError。
    """
    if page_html and page_html.strip():
        html = etree.HTML(page_html)
        scripts = html.xpath("//script/text()") if html is not None else []
        for script_text in scripts:
            match = SALT_PATTERN.search(script_text)
            if match:
                return match.group(1)
    raise SaltNotFoundError("登录页中未找到 CryptoJS.SHA1 加盐脚本，页面结构可能已变更")


def sha1_hex(text: str) -> str:
    return SHA1.new(data=text.encode("utf-8")).hexdigest()


def hash_password(salt: str, password: str) -> str:
    """模拟登录页 JS: CryptoJS.SHA1(salt + '-' + password).toString()"""
    return sha1_hex(f"{salt}-{password}")


def is_login_success(final_url: Union[str, httpx.URL]) -> bool:
    """只根据重定向后的最终 URL 判断: 落到 homeExt.action 即登录成功。"""
    return HOME_PATH_MARKER in str(final_url)


def build_search_form(query: Union[FreeClassroomQuery, Mapping[str, object]]) -> Dict[str, str]:
    """查询参数转为表单，值统一转为字符串。"""
    if isinstance(query, FreeClassroomQuery):
        return query.to_form()
    return {str(key): str(value) for key, value in query.items()}


def _cell_text(cell) -> str:
    # 去除首尾空白，内部连续空白压缩为一个空格
    return " ".join("".join(cell.itertext()).split())


def parse_free_classroom_rows(page_html: str) -> List[List[str]]:
    """
    解析 table.gridtable 结果表，返回每一行所有单元格的文本。

    找不到结果表时返回空列表，不抛异常。
    """
    if not page_html or not page_html.strip():
        return []
    html = etree.HTML(page_html)
    if html is None:
        return []

    xpath_pattern = (
        "//table[contains(concat(' ', normalize-space(@class), ' '), ' gridtable ')]"
        "//tbody/tr"
    )
    rows = []
    for tr in html.xpath(xpath_pattern):
        rows.append([_cell_text(td) for td in tr.xpath("./td")])
    return rows


def parse_free_classroom_html(page_html: str) -> List[str]:
    """
    提取每行第二列 (下标 1) 的教室名称，保持服务器返回的行顺序。

    单元格不足两个的行 (如 "无数据" 提示行) 被丢弃；第二列为空的行保留为 ""。
    """
    names = []
    for index, row in enumerate(parse_free_classroom_rows(page_html)):
        if len(row) < 2:
            logger.debug(f"跳过第 {index + 1} 行: 单元格不足两个 {row}")
            continue
        names.append(row[1])
    return names


class NeuqJwxtClient:
    """
    东北大学秦皇岛分校教务系统 (jwxt.neuq.edu.cn/eams) 客户端。

    职责:
    1. 持有一个带 cookie jar 的 httpx.AsyncClient，所有请求共享同一登录态。
    2. 执行 "页面取 salt -> SHA1 加盐 -> 提交表单" 的登录流程。
    3. 提交空教室查询并解析结果表。

    网络异常 (httpx.HTTPError) 原样抛给调用方，不做转换和重试。
    同一个会话上不要并发发起请求。

    使用方法:
    async with NeuqJwxtClient() as client:
        if await client.login("学号", "密码"):
            names = await client.get_free_classroom(query)
    """

    def __init__(self,
                 base_url: str = BASE_URL,
                 request_delay: float = DEFAULT_REQUEST_DELAY,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 trust_env: bool = True):
        self.request_delay = request_delay
        self._session = httpx.AsyncClient(
            base_url=base_url,
            follow_redirects=True,
            timeout=timeout,
            transport=transport,
            trust_env=trust_env,
        )
        self._session.headers.update({
            'User-Agent': 'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36',
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'zh-CN,zh;q=0.9,en;q=0.8',
        })

    @property
    def session(self) -> httpx.AsyncClient:
        return self._session

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_value, exc_traceback):
        await self.aclose()

    async def aclose(self):
        await self._session.aclose()

    async def _avoid_too_fast_warning(self):
        if self.request_delay > 0:
            logger.info(f"等待 {self.request_delay:g} 秒，避免触发 \"点击过快\" 提示")
            await asyncio.sleep(self.request_delay)

    async def _get_login_page_html(self) -> str:
        response = await self._session.get(LOGIN_PATH)
        return response.text

    async def get_salt(self) -> str:
        """访问登录页并提取 salt。"""
        html = await self._get_login_page_html()
        salt = extract_salt(html)
        logger.debug(f"salt: {salt}")
        return salt

    async def login(self, username: str, password: str) -> bool:
        """
        登录教务系统。

        参数:
            username (str): 学号
            password (str): 密码

        返回:
            bool: 是否登录成功，根据重定向最终是否到达 homeExt.action 判断。
        """
        logger.info("--- [步骤 1] 获取登录页 salt ---")
        salt = await self.get_salt()

        await self._avoid_too_fast_warning()

        logger.info("--- [步骤 2] 提交登录表单 ---")
        form_data = {
            'username': username,
            'password': hash_password(salt, password),
        }
        response = await self._session.post(LOGIN_PATH, data=form_data)
        logger.debug(f"登录重定向后的最终 URL: {response.url}")

        if is_login_success(response.url):
            logger.info("登录成功。")
            return True

        logger.error(f"登录失败，最终停留在: {response.url} (状态码 {response.status_code})")
        return False

    async def get_free_classroom(self,
                                 query: Union[FreeClassroomQuery, Mapping[str, object]]
                                 ) -> List[str]:
        """
        查询空教室。

        参数:
            query: FreeClassroomQuery，或已按教务系统字段名组织好的映射。

        返回:
            list: 教室名称，顺序与服务器返回的行一致。
        """
        await self._avoid_too_fast_warning()

        form_data = build_search_form(query)
        logger.debug(f"空教室查询表单: {form_data}")

        response = await self._session.post(FREE_CLASSROOM_SEARCH_PATH, data=form_data)
        names = parse_free_classroom_html(response.text)
        logger.info(f"查询到 {len(names)} 间空教室。")
        return names
