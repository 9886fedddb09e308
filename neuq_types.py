"""
教务系统空教室查询所需的静态枚举表与查询参数。

这些 ID 来自教务系统空教室查询页面的下拉框，属于固定的查找表。
"""
import datetime
from dataclasses import dataclass
from datetime import timedelta, timezone
from typing import Dict, Optional, Union

# 教室类型
CLASSROOM_TYPE_ID = {
    "普通教室": 1,
    "多媒体大教室": 2,
    "多媒体小教室": 3,
    "语音室": 4,
    "不排课教室": 5,
    "录播教室": 6,
    "机房": 7,
    "活动教室": 8,
    "体育教学场地": 9,
    "智慧教室": 10,
    "实验室": 11,
    "研讨室": 12,
    "多功能": 21,
}

# 校区
CAMPUS_ID = {
    "本部": 1,
    "北戴河": 2,
    "新校区": 3,
}

# 教学楼
BUILDING_ID = {
    "工学馆": 1,
    "基础楼": 2,
    "综合实验楼": 3,
    "地质楼": 4,
    "管理楼": 5,
    "大学会馆": 6,
    "旧实验楼": 7,
    "人文楼": 8,
    "科技楼": 9,
}

# 教学楼简称 (用于输出文件名)
BUILDING_CODE = {
    "工学馆": "gxg",
    "基础楼": "jcl",
    "综合实验楼": "zhsyl",
    "地质楼": "dzl",
    "管理楼": "gll",
    "大学会馆": "dxhg",
    "旧实验楼": "jsyl",
    "人文楼": "rwl",
    "科技楼": "kjl",
}

# 时间周期类型
CYCLE_TIME_TYPE = {
    "天": 1,
    "周": 2,
}

# 使用时间类型: 按小节 / 按具体时间
ROOM_APPLY_TIME_TYPE = {
    "小节": 0,
    "时间": 1,
}

BEIJING_TZ = timezone(timedelta(hours=8))

MIN_PERIOD = 1
MAX_PERIOD = 12
MAX_PAGE_SIZE = 1000


def today_str() -> str:
    """北京时间的今天, yyyy-mm-dd"""
    return datetime.datetime.now(BEIJING_TZ).strftime("%Y-%m-%d")


def lookup_id(table: Dict[str, int], value: Union[str, int]) -> int:
    """
    在查找表中解析 ID，既接受中文名称也接受整数编码。

    参数:
        table (dict): 上方的任一查找表.
        value (str | int): 中文名称 (如 "工学馆") 或编码 (如 1 / "1").

    返回:
        int: 对应的编码。未知值抛出 ValueError。
    """
    if isinstance(value, str):
        if value in table:
            return table[value]
        if value.strip().isdigit():
            value = int(value)
        else:
            raise ValueError(f"未知名称: {value!r}，可选值: {', '.join(table)}")
    if value not in table.values():
        raise ValueError(f"未知编码: {value!r}，可选值: {sorted(table.values())}")
    return value


def building_code(building: Union[str, int]) -> str:
    """教学楼简称，未登记简称的楼以 building{id} 代替。"""
    building_id = lookup_id(BUILDING_ID, building)
    for name, code in BUILDING_CODE.items():
        if BUILDING_ID[name] == building_id:
            return code
    return f"building{building_id}"


def building_name(building_id: int) -> str:
    for name, bid in BUILDING_ID.items():
        if bid == building_id:
            return name
    return str(building_id)


def _parse_date(value: str, field_name: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} 必须是 yyyy-mm-dd 格式的日期，实际为: {value!r}")


@dataclass(frozen=True)
class FreeClassroomQuery:
    """
    空教室查询参数 (对应 free!search.action 的表单)。

    构造时校验取值范围，to_form() 输出教务系统要求的字段名。
    """
    campus_id: int
    building_id: int
    date_begin: str
    date_end: str
    time_begin: int
    time_end: int
    classroom_name: str = ""
    classroom_type_id: Optional[int] = None
    cycle_count: int = 1
    cycle_type: int = CYCLE_TIME_TYPE["天"]
    room_apply_time_type: int = ROOM_APPLY_TIME_TYPE["小节"]
    seats: Optional[int] = None
    page_no: Optional[int] = None
    page_size: Optional[int] = None

    def __post_init__(self):
        # 中文名称统一转为编码，to_form() 只输出编码
        object.__setattr__(self, "campus_id", lookup_id(CAMPUS_ID, self.campus_id))
        object.__setattr__(self, "building_id", lookup_id(BUILDING_ID, self.building_id))
        object.__setattr__(self, "cycle_type", lookup_id(CYCLE_TIME_TYPE, self.cycle_type))
        object.__setattr__(self, "room_apply_time_type",
                           lookup_id(ROOM_APPLY_TIME_TYPE, self.room_apply_time_type))
        if self.classroom_type_id is not None:
            object.__setattr__(self, "classroom_type_id",
                               lookup_id(CLASSROOM_TYPE_ID, self.classroom_type_id))

        # 按小节查询时 timeBegin/timeEnd 是节次
        if self.room_apply_time_type == ROOM_APPLY_TIME_TYPE["小节"]:
            for name, period in (("time_begin", self.time_begin), ("time_end", self.time_end)):
                if not MIN_PERIOD <= period <= MAX_PERIOD:
                    raise ValueError(f"{name} 必须在 {MIN_PERIOD}-{MAX_PERIOD} 之间，实际为: {period}")
        if self.time_begin > self.time_end:
            raise ValueError(f"开始节次 {self.time_begin} 不能晚于结束节次 {self.time_end}")

        if self.cycle_count < 1:
            raise ValueError(f"cycle_count 必须 >= 1，实际为: {self.cycle_count}")

        begin = _parse_date(self.date_begin, "date_begin")
        end = _parse_date(self.date_end, "date_end")
        if begin > end:
            raise ValueError(f"开始日期 {self.date_begin} 不能晚于结束日期 {self.date_end}")

        if self.page_no is not None and self.page_no < 1:
            raise ValueError(f"page_no 必须 >= 1，实际为: {self.page_no}")
        if self.page_size is not None and not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size 必须在 1-{MAX_PAGE_SIZE} 之间，实际为: {self.page_size}")
        if self.seats is not None and self.seats < 0:
            raise ValueError(f"seats 不能为负数，实际为: {self.seats}")

    @classmethod
    def for_period(cls,
                   building: Union[str, int],
                   date: str,
                   period_begin: int,
                   period_end: Optional[int] = None,
                   campus: Union[str, int] = "本部",
                   page_size: Optional[int] = 500,
                   ) -> "FreeClassroomQuery":
        """单日、按小节查询的常用写法。"""
        return cls(
            campus_id=lookup_id(CAMPUS_ID, campus),
            building_id=lookup_id(BUILDING_ID, building),
            date_begin=date,
            date_end=date,
            time_begin=period_begin,
            time_end=period_begin if period_end is None else period_end,
            page_size=page_size,
        )

    def to_form(self) -> Dict[str, str]:
        """
        序列化为表单键值对，所有值均转为字符串，未设置的可选字段不输出。
        """
        fields = [
            ("classroom.type.id", self.classroom_type_id),
            ("classroom.campus.id", self.campus_id),
            ("classroom.building.id", self.building_id),
            ("seats", self.seats),
            ("classroom.name", self.classroom_name),
            ("cycleTime.cycleCount", self.cycle_count),
            ("cycleTime.cycleType", self.cycle_type),
            ("cycleTime.dateBegin", self.date_begin),
            ("cycleTime.dateEnd", self.date_end),
            ("roomApplyTimeType", self.room_apply_time_type),
            ("timeBegin", self.time_begin),
            ("timeEnd", self.time_end),
            ("pageNo", self.page_no),
            ("pageSize", self.page_size),
        ]
        return {key: str(value) for key, value in fields if value is not None}
