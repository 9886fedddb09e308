"""
图片生成器 - 将空教室数据渲染为 PNG 图片。

画布尺寸、颜色等参数全部由 RenderConfig 传入，渲染函数本身不读取全局状态。
"""
import datetime
import logging
import math
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import matplotlib.font_manager as fm  # noqa: E402
from matplotlib.patches import Rectangle  # noqa: E402

logger = logging.getLogger(__name__)

# 按优先级排列的中文字体
CJK_FONT_CANDIDATES = [
    "Noto Sans CJK SC",
    "Source Han Sans SC",
    "WenQuanYi Micro Hei",
    "WenQuanYi Zen Hei",
    "Microsoft YaHei",
    "SimHei",
    "PingFang SC",
    "Heiti SC",
    "Arial Unicode MS",
    "DejaVu Sans",
]

DATA_SOURCE = "东北大学秦皇岛分校教务系统"


def setup_cjk_font() -> str:
    """
    选择系统中第一个可用的中文字体。

    返回:
        str: 设置的字体名称，找不到中文字体时为 DejaVu Sans。
    """
    available_fonts = {f.name for f in fm.fontManager.ttflist}

    for font in CJK_FONT_CANDIDATES:
        if font in available_fonts:
            plt.rcParams["font.family"] = [font]
            plt.rcParams["axes.unicode_minus"] = False
            return font

    plt.rcParams["font.family"] = ["DejaVu Sans"]
    plt.rcParams["axes.unicode_minus"] = False
    logger.warning("未找到中文字体，图片中的中文可能无法正常显示。")
    return "DejaVu Sans"


@dataclass
class RenderConfig:
    """画布参数，单位为像素。"""
    width: int = 800
    height: int = 600
    padding: int = 40
    line_height: int = 24
    font_size: int = 16
    title_font_size: int = 20
    footer_font_size: int = 12
    columns_per_row: int = 3
    header_color: str = "#2c3e50"
    text_color: str = "#34495e"
    background_color: str = "#ffffff"
    border_color: str = "#bdc3c7"
    empty_color: str = "#e74c3c"
    footer_color: str = "#95a5a6"
    free_color: str = "#27ae60"
    occupied_color: str = "#bdc3c7"
    building: str = "工学馆"
    dpi: int = 100

    @property
    def list_start_y(self) -> int:
        return self.padding + self.title_font_size + 40

    @property
    def column_width(self) -> float:
        return (self.width - 2 * self.padding) / self.columns_per_row


@dataclass
class GridLayout:
    """教室列表排版结果，坐标以画布左上角为原点。"""
    items: List[Tuple[str, float, float]] = field(default_factory=list)
    truncated: bool = False
    total_y: float = 0.0


def layout_classroom_grid(names: Sequence[str], config: RenderConfig) -> GridLayout:
    """
    按多列排布教室名称。

    超出底部边界的条目不绘制；若最后一个条目越界，在上一行同列位置显示 "..."。
    """
    layout = GridLayout()
    limit_y = config.height - config.padding - 60

    for index, name in enumerate(names):
        row, col = divmod(index, config.columns_per_row)
        x = config.padding + col * config.column_width
        y = config.list_start_y + 40 + row * config.line_height

        if y > limit_y:
            layout.truncated = True
            if index == len(names) - 1:
                layout.items.append(("...", x, y - config.line_height))
            continue

        layout.items.append((f"• {name}", x, y))

    layout.total_y = min(
        config.list_start_y + 40 + math.ceil(len(names) / config.columns_per_row) * config.line_height + 20,
        config.height - config.padding - 40,
    )
    return layout


def _points(config: RenderConfig, pixels: float) -> float:
    # matplotlib 字号单位是磅
    return pixels * 72 / config.dpi


def _new_canvas(config: RenderConfig):
    setup_cjk_font()
    fig = plt.figure(figsize=(config.width / config.dpi, config.height / config.dpi), dpi=config.dpi)
    ax = fig.add_axes((0, 0, 1, 1))
    # y 轴向下，与画布坐标一致
    ax.set_xlim(0, config.width)
    ax.set_ylim(config.height, 0)
    ax.axis("off")
    fig.patch.set_facecolor(config.background_color)
    return fig, ax


def _draw_title(ax, config: RenderConfig, title: str):
    ax.text(config.width / 2, config.padding + config.title_font_size, title,
            ha="center", va="baseline", color=config.header_color,
            fontsize=_points(config, config.title_font_size), fontweight="bold")


def _draw_border(ax, config: RenderConfig):
    ax.add_patch(Rectangle((10, 10), config.width - 20, config.height - 20,
                           fill=False, edgecolor=config.border_color, linewidth=2))


def _draw_footer(ax, config: RenderConfig, generated_at: Optional[datetime.datetime] = None):
    generated_at = generated_at or datetime.datetime.now()
    footer_text = f"数据来源: {DATA_SOURCE} | 生成时间: {generated_at.strftime('%Y/%m/%d %H:%M:%S')}"
    ax.text(config.width / 2, config.height - 20, footer_text,
            ha="center", va="baseline", color=config.footer_color,
            fontsize=_points(config, config.footer_font_size))


def _to_png_bytes(fig) -> bytes:
    buffer = BytesIO()
    try:
        fig.savefig(buffer, format="png", dpi=fig.dpi, facecolor=fig.get_facecolor(), edgecolor="none")
    finally:
        plt.close(fig)
    return buffer.getvalue()


def render_free_classroom_image(names: Sequence[str],
                                date: str,
                                period: Union[int, str],
                                config: Optional[RenderConfig] = None) -> bytes:
    """
    将空教室名称列表渲染为 PNG。

    参数:
        names (list): 教室名称.
        date (str): 日期 yyyy-mm-dd.
        period (int | str): 节次，如 3 或 "1-4".
        config (RenderConfig): 画布参数，默认 800x600.

    返回:
        bytes: PNG 图片内容。
    """
    config = config or RenderConfig()
    fig, ax = _new_canvas(config)
    font = _points(config, config.font_size)

    _draw_title(ax, config, f"{config.building}空教室查询 - {date} 第{period}节")

    start_y = config.list_start_y
    if not names:
        ax.text(config.width / 2, start_y + 50, "暂无空教室", ha="center", va="baseline",
                color=config.empty_color, fontsize=_points(config, config.font_size + 2))
    else:
        ax.text(config.padding, start_y, "空教室列表:", ha="left", va="baseline",
                color=config.header_color, fontsize=font, fontweight="bold")

        layout = layout_classroom_grid(names, config)
        for text, x, y in layout.items:
            ax.text(x, y, text, ha="left", va="baseline", color=config.text_color, fontsize=font)

        ax.text(config.padding, layout.total_y, f"共找到 {len(names)} 间空教室", ha="left",
                va="baseline", color=config.header_color, fontsize=font, fontweight="bold")

    _draw_border(ax, config)
    _draw_footer(ax, config)
    return _to_png_bytes(fig)


def layout_classroom_info(classrooms: Sequence[Dict[str, Any]],
                          config: RenderConfig) -> Tuple[GridLayout, List[Tuple[str, float, float, str]]]:
    """排版带占用状态的教室列表，返回 (排版结果, [(文本, x, y, 颜色), ...])。"""
    labels = [f"{room.get('name', '')} ({room.get('capacity', '-')}座)" for room in classrooms]
    layout = layout_classroom_grid(labels, config)

    entries = []
    for (text, x, y), room in zip(layout.items, classrooms):
        if text == "...":
            entries.append((text, x, y, config.text_color))
            continue
        free = room.get("isFree")
        color = config.free_color if free else config.occupied_color
        entries.append((("● " if free else "○ ") + text[2:], x, y, color))
    return layout, entries


def render_classroom_info_image(classrooms: Sequence[Dict[str, Any]],
                                date: str,
                                period: int,
                                config: Optional[RenderConfig] = None) -> bytes:
    """
    渲染带占用状态的教室信息图: 空闲教室高亮，占用教室置灰。

    classrooms 的元素需包含 name / capacity / isFree 字段。
    """
    config = config or RenderConfig()
    fig, ax = _new_canvas(config)
    font = _points(config, config.font_size)

    free_count = sum(1 for room in classrooms if room.get("isFree"))
    total = len(classrooms)
    _draw_title(ax, config, f"{config.building}教室使用情况 - {date} 第{period}节")

    start_y = config.list_start_y
    ratio = f"{free_count / total:.0%}" if total else "0%"
    ax.text(config.padding, start_y, f"空闲 {free_count} / 共 {total} 间 (空闲率 {ratio})",
            ha="left", va="baseline", color=config.header_color, fontsize=font, fontweight="bold")

    layout, entries = layout_classroom_info(classrooms, config)
    for text, x, y, color in entries:
        ax.text(x, y, text, ha="left", va="baseline", color=color, fontsize=font)

    ax.text(config.padding, layout.total_y, "● 空闲    ○ 占用", ha="left", va="baseline",
            color=config.text_color, fontsize=font)

    _draw_border(ax, config)
    _draw_footer(ax, config)
    return _to_png_bytes(fig)
