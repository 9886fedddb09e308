"""
空教室可视化预览服务。

提供主页、可视化预览页，以及基于 mock 数据的图片 / JSON 接口。
本服务不访问教务系统，全部数据均为按节次确定性生成的模拟数据。
"""
import logging
import os
import re
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response

from image_generator import RenderConfig, render_classroom_info_image
from neuq_types import MAX_PERIOD, MIN_PERIOD, today_str

logger = logging.getLogger(__name__)

# 与 JavaScript parseInt 一致: 取开头的整数部分，如 "3abc" -> 3
LEADING_INT_PATTERN = re.compile(r"\s*([+-]?\d+)")

DEFAULT_PORT = 3000
MOCK_BUILDING = "工学馆"

MOCK_BASE_CLASSROOMS = [
    {"name": "GX101", "capacity": 120, "type": "多媒体大教室"},
    {"name": "GX102", "capacity": 80, "type": "多媒体教室"},
    {"name": "GX103", "capacity": 60, "type": "普通教室"},
    {"name": "GX201", "capacity": 100, "type": "多媒体教室"},
    {"name": "GX202", "capacity": 80, "type": "多媒体教室"},
    {"name": "GX203", "capacity": 60, "type": "普通教室"},
    {"name": "GX301", "capacity": 120, "type": "多媒体大教室"},
    {"name": "GX302", "capacity": 80, "type": "多媒体教室"},
    {"name": "GX303", "capacity": 60, "type": "普通教室"},
    {"name": "GX401", "capacity": 100, "type": "多媒体教室"},
    {"name": "GX402", "capacity": 80, "type": "多媒体教室"},
    {"name": "GX403", "capacity": 60, "type": "普通教室"},
    {"name": "GX501", "capacity": 40, "type": "研讨室"},
    {"name": "GX502", "capacity": 40, "type": "研讨室"},
    {"name": "GX503", "capacity": 30, "type": "小教室"},
]


def parse_period(raw: str) -> Optional[int]:
    """路径参数转节次，只看开头的整数部分；无法解析或不在 1-12 内返回 None。"""
    match = LEADING_INT_PATTERN.match(raw)
    if not match:
        return None
    period = int(match.group(1))
    if period < MIN_PERIOD or period > MAX_PERIOD:
        return None
    return period


def occupancy_rate(period: int) -> float:
    # 上午 (1-4 节) 占用率高，下午 (5-8 节) 中等，晚上 (9-12 节) 低
    if 1 <= period <= 4:
        return 0.7
    if 5 <= period <= 8:
        return 0.5
    return 0.3


def generate_mock_classroom_data(period: int) -> List[Dict[str, Any]]:
    """
    生成某一节次的模拟教室数据。

    使用线性同余伪随机数，同一节次每次生成的结果一致。
    """
    rate = occupancy_rate(period)
    classrooms = []
    for index, classroom in enumerate(MOCK_BASE_CLASSROOMS):
        seed = period * 1000 + index
        pseudo_random = (seed * 9301 + 49297) % 233280 / 233280
        classrooms.append({
            "name": classroom["name"],
            "capacity": classroom["capacity"],
            "type": classroom["type"],
            "building": MOCK_BUILDING,
            "isFree": pseudo_random > rate,
        })
    return classrooms


def generate_home_page() -> str:
    return """<!DOCTYPE html>
<html lang="zh-CN">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>NEUQ 空教室查询系统</title>
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: 'Microsoft YaHei', Arial, sans-serif;
            background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
            min-height: 100vh; display: flex; flex-direction: column;
            align-items: center; justify-content: center; color: white;
        }
        .container {
            text-align: center; max-width: 800px; padding: 40px;
            background: rgba(255, 255, 255, 0.1); border-radius: 20px;
        }
        h1 { font-size: 3rem; margin-bottom: 20px; font-weight: 300; }
        .subtitle { font-size: 1.2rem; margin-bottom: 40px; opacity: 0.9; }
        .features {
            display: grid; grid-template-columns: repeat(auto-fit, minmax(220px, 1fr));
            gap: 20px; margin-bottom: 40px;
        }
        .feature {
            background: rgba(255, 255, 255, 0.1); padding: 20px; border-radius: 10px;
            border: 1px solid rgba(255, 255, 255, 0.2);
        }
        .feature h3 { margin-bottom: 10px; color: #ffd700; }
        .cta-button {
            display: inline-block; padding: 15px 30px; color: white; text-decoration: none;
            background: linear-gradient(45deg, #ff6b6b, #ee5a24); border-radius: 30px;
            font-weight: bold; font-size: 1.1rem;
        }
        .footer { margin-top: 40px; opacity: 0.7; font-size: 0.9rem; }
    </style>
</head>
<body>
    <div class="container">
        <h1>NEUQ 空教室查询</h1>
        <p class="subtitle">东北大学秦皇岛分校空教室可视化查询系统</p>
        <div class="features">
            <div class="feature"><h3>可视化展示</h3><p>通过图像直观展示教室使用情况</p></div>
            <div class="feature"><h3>分节查询</h3><p>支持查询当日各个节次的空教室信息</p></div>
            <div class="feature"><h3>图片导出</h3><p>将教室数据渲染为图片便于分享</p></div>
        </div>
        <a href="/visualization-preview" class="cta-button">查看可视化预览</a>
        <div class="footer">
            <p>数据来源：东北大学秦皇岛分校教务系统</p>
            <p>本项目仅供学习研究使用</p>
        </div>
    </div>
</body>
</html>
"""


def generate_visualization_preview_page(date: Optional[str] = None) -> str:
    date = date or today_str()
    period_buttons = "\n".join(
        f'            <button class="period-btn" onclick="loadPeriodData({period})" '
        f'data-period="{period}">第{period}节</button>'
        for period in range(1, 13)
    )
    return f"""<!DOCTYPE html>
<html lang="zh-CN">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>教室数据可视化预览 - NEUQ 空教室查询</title>
    <style>
        * {{ margin: 0; padding: 0; box-sizing: border-box; }}
        body {{ font-family: 'Microsoft YaHei', Arial, sans-serif; background: #f5f6fa; color: #2c3e50; }}
        .header {{
            background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
            color: white; padding: 20px 0; text-align: center;
        }}
        .header h1 {{ font-size: 2.5rem; margin-bottom: 10px; font-weight: 300; }}
        .main {{ max-width: 1000px; margin: 30px auto; padding: 0 20px; }}
        .period-buttons {{ display: grid; grid-template-columns: repeat(6, 1fr); gap: 10px; margin-bottom: 30px; }}
        .period-btn {{
            padding: 10px; border: 2px solid #667eea; background: white; color: #667eea;
            border-radius: 8px; cursor: pointer; font-size: 1rem;
        }}
        .period-btn.active, .period-btn:hover {{ background: #667eea; color: white; }}
        .result {{ display: flex; gap: 20px; flex-wrap: wrap; }}
        .result img {{ max-width: 100%; border-radius: 10px; box-shadow: 0 2px 10px rgba(0, 0, 0, 0.1); }}
        .room {{ padding: 6px 10px; margin: 4px; border-radius: 6px; display: inline-block; }}
        .room.free {{ background: #d4efdf; color: #1e8449; }}
        .room.occupied {{ background: #eaeded; color: #7f8c8d; }}
        .back {{ display: inline-block; margin-top: 20px; color: #667eea; }}
    </style>
</head>
<body>
    <div class="header">
        <h1>教室数据可视化预览</h1>
        <p class="subtitle">{MOCK_BUILDING} · {date}</p>
    </div>
    <div class="main">
        <div class="period-buttons">
{period_buttons}
        </div>
        <div class="result">
            <div id="image-container">请选择节次</div>
            <div id="data-container"></div>
        </div>
        <a class="back" href="/">返回主页</a>
    </div>
    <script>
        /**
         * 加载指定节次的图片和数据
         * @param {{number}} period 节次 (1-12)
         */
        async function loadPeriodData(period) {{
            document.querySelectorAll('.period-btn').forEach(btn => btn.classList.remove('active'));
            document.querySelector(`[data-period="${{period}}"]`).classList.add('active');
            const imageContainer = document.getElementById('image-container');
            const dataContainer = document.getElementById('data-container');
            imageContainer.textContent = '加载中...';
            try {{
                const [imageRes, dataRes] = await Promise.all([
                    fetch(`/api/classroom-image/${{period}}`),
                    fetch(`/api/classroom-data/${{period}}`)
                ]);
                if (!imageRes.ok || !dataRes.ok) throw new Error('请求失败');
                const imageUrl = URL.createObjectURL(await imageRes.blob());
                const data = await dataRes.json();
                imageContainer.innerHTML = `<img src="${{imageUrl}}" alt="第${{period}}节">`;
                dataContainer.innerHTML = data.classrooms.map(room =>
                    `<span class="room ${{room.isFree ? 'free' : 'occupied'}}">${{room.name}} (${{room.capacity}}座)</span>`
                ).join('');
            }} catch (error) {{
                imageContainer.textContent = '加载失败: ' + error.message;
            }}
        }}
    </script>
</body>
</html>
"""


def create_app(render_config: Optional[RenderConfig] = None) -> FastAPI:
    """创建预览服务的 FastAPI 应用。"""
    render_config = render_config or RenderConfig(building=MOCK_BUILDING)
    app = FastAPI(title="NEUQ 空教室可视化预览")

    @app.get("/", response_class=HTMLResponse)
    def home_page():
        return HTMLResponse(generate_home_page())

    @app.get("/visualization-preview", response_class=HTMLResponse)
    def visualization_preview_page():
        return HTMLResponse(generate_visualization_preview_page())

    @app.get("/api/classroom-image/{period}")
    def classroom_image(period: str):
        parsed = parse_period(period)
        if parsed is None:
            return PlainTextResponse("Invalid period", status_code=400)

        try:
            image_bytes = render_classroom_info_image(
                generate_mock_classroom_data(parsed), today_str(), parsed, render_config
            )
        except Exception as e:
            logger.error(f"生成图片时发生错误: {e}", exc_info=True)
            return PlainTextResponse("Internal Server Error", status_code=500)

        return Response(
            content=image_bytes,
            media_type="image/png",
            headers={"Cache-Control": "public, max-age=300"},
        )

    @app.get("/api/classroom-data/{period}")
    def classroom_data(period: str):
        parsed = parse_period(period)
        if parsed is None:
            return JSONResponse({"error": "Invalid period"}, status_code=400)

        return {
            "date": today_str(),
            "period": parsed,
            "building": MOCK_BUILDING,
            "classrooms": generate_mock_classroom_data(parsed),
        }

    return app


def run(port: Optional[int] = None):
    """启动服务，端口默认取环境变量 PORT，未设置时为 3000。"""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    port = port or int(os.environ.get("PORT", DEFAULT_PORT))
    logger.info("NEUQ 空教室可视化系统")
    logger.info(f"主页: http://localhost:{port}")
    logger.info(f"可视化预览: http://localhost:{port}/visualization-preview")
    uvicorn.run(create_app(), host="0.0.0.0", port=port)


if __name__ == "__main__":
    try:
        run()
    except KeyboardInterrupt:
        logger.info("正在关闭服务器...")
