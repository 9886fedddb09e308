import argparse
import asyncio
import io
import json
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from exporter import DEFAULT_OUTPUT_DIR, OutputFormat, export
from neuq_jwxt_client import DEFAULT_REQUEST_DELAY, NeuqJwxtClient, SaltNotFoundError
from neuq_types import BUILDING_ID, CAMPUS_ID, MAX_PERIOD, MIN_PERIOD, FreeClassroomQuery, today_str

logger = logging.getLogger(__name__)

ENV_JSON_PATH = Path(".env.json")

# 退出码
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2


class ErrorPolicy(Enum):
    """单个节次查询失败时的处理策略，整个运行期间只选一次。"""
    ABORT = "abort"
    SKIP = "skip"
    RETRY = "retry"


@dataclass
class ItemOutcome:
    item: Any
    result: Any = None
    error: Optional[BaseException] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PlanSummary:
    outcomes: List[ItemOutcome] = field(default_factory=list)

    @property
    def failed(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def succeeded(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.ok]


async def run_with_policy(items: Sequence[Any],
                          action: Callable[[Any], Awaitable[Any]],
                          policy: ErrorPolicy = ErrorPolicy.ABORT,
                          retries: int = 2) -> PlanSummary:
    """
    依次对每个条目执行 action，按 policy 处理失败。

    ABORT: 第一次失败时异常直接抛出。
    SKIP: 记录失败并继续下一个条目。
    RETRY: 同一条目最多再尝试 retries 次，仍失败则跳过。
    """
    summary = PlanSummary()
    max_attempts = 1 + max(retries, 0) if policy is ErrorPolicy.RETRY else 1

    for item in items:
        outcome = ItemOutcome(item=item)
        while outcome.attempts < max_attempts:
            outcome.attempts += 1
            try:
                outcome.result = await action(item)
                outcome.error = None
                break
            except Exception as e:
                if policy is ErrorPolicy.ABORT:
                    raise
                outcome.error = e
                if outcome.attempts < max_attempts:
                    logger.warning(f"{item} 第 {outcome.attempts} 次尝试失败: {e}，准备重试...")
                else:
                    logger.error(f"{item} 失败，已跳过: {e}", exc_info=True)
        summary.outcomes.append(outcome)

    return summary


def parse_periods(text: str) -> List[int]:
    """
    解析节次参数，如 "1-12"、"1,3,5"、"1-4,9"。

    返回:
        list: 去重后按出现顺序排列的节次。
    """
    periods = []
    for token in text.split(","):
        token = token.strip()
        if not token:
            continue
        if "-" in token:
            begin_str, end_str = token.split("-", 1)
            begin, end = int(begin_str), int(end_str)
            if begin > end:
                raise ValueError(f"节次范围 {token} 的开始大于结束")
            values = range(begin, end + 1)
        else:
            values = [int(token)]
        for period in values:
            if not MIN_PERIOD <= period <= MAX_PERIOD:
                raise ValueError(f"节次 {period} 不在 {MIN_PERIOD}-{MAX_PERIOD} 之间")
            if period not in periods:
                periods.append(period)
    if not periods:
        raise ValueError("至少需要一个节次")
    return periods


def load_credentials(username: Optional[str],
                     password: Optional[str],
                     env_path: Path = ENV_JSON_PATH) -> Optional[Tuple[str, str]]:
    """命令行参数优先，其次读取 .env.json 中的 username / password。"""
    if username and password:
        return username, password

    if env_path.exists():
        with open(env_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            logger.warning(f"{env_path} 应为 JSON 对象，实际为 {type(data).__name__}，已忽略。")
            return None
        if data.get("username") and data.get("password"):
            return data["username"], data["password"]
        logger.warning(f"{env_path} 中缺少 username 或 password 字段。")

    return None


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """解析命令行参数"""
    parser = argparse.ArgumentParser(description='东北大学秦皇岛分校空教室查询脚本')
    parser.add_argument('--username', '-u', help='教务系统用户名 (学号)，未提供时读取 .env.json')
    parser.add_argument('--password', '-p', help='教务系统密码，未提供时读取 .env.json')
    parser.add_argument('--building', '-b', default='工学馆', help=f"教学楼 ({'/'.join(BUILDING_ID)})")
    parser.add_argument('--campus', '-c', default='本部', help=f"校区 ({'/'.join(CAMPUS_ID)})")
    parser.add_argument('--date', '-d', default=None, help='查询日期 yyyy-mm-dd，默认北京时间今天')
    parser.add_argument('--periods', default='1-12', help='节次，如 1-12 或 1,3,5 (默认 1-12)')
    parser.add_argument('--page-size', type=int, default=500, help='每页条数 (<= 1000)')
    parser.add_argument('--format', '-f', dest='output_format', default=OutputFormat.JSON.value,
                        choices=[f.value for f in OutputFormat], help='输出形式')
    parser.add_argument('--output-dir', '-o', default=str(DEFAULT_OUTPUT_DIR), help='输出目录')
    parser.add_argument('--error-policy', default=ErrorPolicy.ABORT.value,
                        choices=[p.value for p in ErrorPolicy],
                        help='某节查询失败时: abort=终止, skip=跳过, retry=重试后跳过')
    parser.add_argument('--retries', type=int, default=2, help='retry 策略下的重试次数')
    parser.add_argument('--delay', type=float, default=DEFAULT_REQUEST_DELAY,
                        help='每次请求前的等待秒数')
    parser.add_argument('--env-file', default=str(ENV_JSON_PATH), help='凭据文件路径')
    parser.add_argument('--verbose', '-v', action='store_true', help='输出 DEBUG 日志')
    return parser.parse_args(argv)


async def run_free_classroom_query(args: argparse.Namespace,
                                   client: Optional[NeuqJwxtClient] = None) -> int:
    """
    登录并逐节查询空教室，返回进程退出码。

    参数:
        args: parse_arguments() 的结果.
        client: 可注入的客户端 (测试用)，默认新建。
    """
    credentials = load_credentials(args.username, args.password, Path(args.env_file))
    if not credentials:
        logger.error("请通过 -u 用户名 -p 密码 传入凭据，或在 .env.json 中提供 username / password")
        return EXIT_FAILED

    try:
        periods = parse_periods(args.periods)
        date = args.date or today_str()
        # 先构造全部查询，参数错误在登录前暴露
        queries = [
            FreeClassroomQuery.for_period(args.building, date, period,
                                          campus=args.campus, page_size=args.page_size)
            for period in periods
        ]
    except ValueError as e:
        logger.error(f"参数错误: {e}")
        return EXIT_FAILED

    output_format = OutputFormat(args.output_format)
    policy = ErrorPolicy(args.error_policy)
    client = client or NeuqJwxtClient(request_delay=args.delay)

    async with client:
        try:
            succeed = await client.login(*credentials)
        except SaltNotFoundError as e:
            logger.error(f"无法登录: {e}")
            return EXIT_FAILED
        if not succeed:
            logger.error("登录失败，请检查用户名和密码。")
            return EXIT_FAILED

        async def query_and_export(query: FreeClassroomQuery):
            label = f"{date} {args.building} 第{query.time_begin}-{query.time_end}节"
            logger.info(f"正在查询 {label} 空教室")
            names = await client.get_free_classroom(query)
            logger.info(f"{label}: {len(names)} 间空教室")
            return export(names, args.building, date, query.time_begin, query.time_end,
                          output_format, args.output_dir)

        summary = await run_with_policy(queries, query_and_export, policy, args.retries)

    if summary.failed:
        failed_periods = [o.item.time_begin for o in summary.failed]
        logger.warning(f"以下节次查询失败: {failed_periods}")
        return EXIT_PARTIAL if summary.succeeded else EXIT_FAILED

    logger.info(f"--- 全部完成，共 {len(summary.outcomes)} 个节次 ---")
    return EXIT_OK


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8'),
    )
    # 将 httpx 的日志级别调高，避免过多的 DEBUG 输出
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("matplotlib").setLevel(logging.WARNING)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """主程序入口：解析命令行参数并启动 asyncio 循环。"""
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    try:
        return asyncio.run(run_free_classroom_query(args))
    except KeyboardInterrupt:
        logger.info("\n--- 用户手动中断程序 ---")
        return EXIT_FAILED
    except Exception as e:
        logger.critical(f"程序运行错误: {e}", exc_info=True)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
