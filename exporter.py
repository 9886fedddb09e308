import json
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

from image_generator import RenderConfig, render_free_classroom_image
from neuq_types import building_code, building_name, lookup_id, BUILDING_ID

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = Path("free-classroom-data")


class OutputFormat(Enum):
    """查询结果的输出形式"""
    JSON = "json"
    IMAGE = "image"
    BOTH = "both"


def output_stem(building: Union[str, int], date: str, period_begin: int, period_end: int) -> str:
    """输出文件名 (不含扩展名)，如 gxg-2025-01-01-1-1"""
    return f"{building_code(building)}-{date}-{period_begin}-{period_end}"


def save_json(names: Sequence[str],
              building: Union[str, int],
              date: str,
              period_begin: int,
              period_end: int,
              output_dir: Union[str, Path] = DEFAULT_OUTPUT_DIR) -> Path:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    file_path = output_dir / f"{output_stem(building, date, period_begin, period_end)}.json"
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(list(names), f, ensure_ascii=False)

    logger.info(f"已保存 JSON: {file_path}")
    return file_path


def save_image(names: Sequence[str],
               building: Union[str, int],
               date: str,
               period_begin: int,
               period_end: int,
               output_dir: Union[str, Path] = DEFAULT_OUTPUT_DIR,
               config: Optional[RenderConfig] = None) -> Path:
    """渲染并保存 PNG。config 未指定时标题使用该教学楼名称。"""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if config is None:
        config = RenderConfig(building=building_name(lookup_id(BUILDING_ID, building)))
    # 跨多节查询时标题显示 "1-4" 形式
    period_label = str(period_begin) if period_begin == period_end else f"{period_begin}-{period_end}"
    image_bytes = render_free_classroom_image(names, date, period_label, config)

    file_path = output_dir / f"{output_stem(building, date, period_begin, period_end)}.png"
    file_path.write_bytes(image_bytes)

    logger.info(f"已生成图片: {file_path}")
    return file_path


def export(names: Sequence[str],
           building: Union[str, int],
           date: str,
           period_begin: int,
           period_end: int,
           output_format: OutputFormat = OutputFormat.JSON,
           output_dir: Union[str, Path] = DEFAULT_OUTPUT_DIR,
           config: Optional[RenderConfig] = None) -> List[Path]:
    """
    按输出形式保存一次查询的结果。

    返回:
        list: 写出的文件路径。
    """
    written = []
    if output_format in (OutputFormat.JSON, OutputFormat.BOTH):
        written.append(save_json(names, building, date, period_begin, period_end, output_dir))
    if output_format in (OutputFormat.IMAGE, OutputFormat.BOTH):
        written.append(save_image(names, building, date, period_begin, period_end, output_dir, config))
    return written
