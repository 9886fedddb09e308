"""
生成静态演示文件: 主页、可视化预览页，以及前几节的示例图片。
"""
import logging
import sys
from pathlib import Path
from typing import List, Union

from image_generator import RenderConfig, render_classroom_info_image
from visualization_server import (
    MOCK_BUILDING,
    generate_home_page,
    generate_mock_classroom_data,
    generate_visualization_preview_page,
)

logger = logging.getLogger(__name__)

DEMO_DATE = "2025-01-01"


def generate_demo_pages(output_dir: Union[str, Path] = ".", periods: int = 3) -> List[Path]:
    """写出演示 HTML 与 PNG，返回生成的文件列表。"""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []

    home_path = output_dir / "demo-home.html"
    home_path.write_text(generate_home_page(), encoding="utf-8")
    written.append(home_path)
    logger.info(f"主页演示文件已生成: {home_path}")

    preview_path = output_dir / "demo-visualization-preview.html"
    preview_path.write_text(generate_visualization_preview_page(DEMO_DATE), encoding="utf-8")
    written.append(preview_path)
    logger.info(f"可视化预览演示文件已生成: {preview_path}")

    config = RenderConfig(building=MOCK_BUILDING)
    for period in range(1, periods + 1):
        image_bytes = render_classroom_info_image(
            generate_mock_classroom_data(period), DEMO_DATE, period, config
        )
        image_path = output_dir / f"demo-classroom-period-{period}.png"
        image_path.write_bytes(image_bytes)
        written.append(image_path)
        logger.info(f"示例图片已生成: {image_path}")

    return written


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    try:
        generate_demo_pages(sys.argv[1] if len(sys.argv) > 1 else ".")
    except Exception as e:
        logger.critical(f"演示生成时发生错误: {e}", exc_info=True)
        sys.exit(1)
