"""
QuickInsight Vocabulary Tables
==============================

Static, data-only tables consumed by the matching code:

- KEYWORD_RULES: query-type keyword table (primary weight 2, secondary 1)
- DOMAIN_TERMS: industry vocabularies used to raise classification confidence
- CHINESE_NUMERALS: numeral words recognised by top-N extraction
- COLUMN_PATTERNS: semantic column-name patterns (shared by schema
  inspection and RFM detection)
- RFM detection patterns: precise amount names, customer/order id tiers,
  amount exclusion rules

Nothing here is mutated at runtime. Bump VOCABULARY_VERSION when a table
changes so cached classifications can be told apart.
"""

import re
from typing import Dict, List, Pattern, Tuple

from .types import QueryType

VOCABULARY_VERSION = "1.0"


# =============================================================================
# QUERY-TYPE KEYWORDS
# =============================================================================

# Declaration order is the tie-break order.
KEYWORD_RULES: Dict[QueryType, Dict[str, Tuple[str, ...]]] = {
    QueryType.KPI_SINGLE: {
        "primary": ("总共", "总数", "总计", "一共", "多少个", "有几个", "数量",
                    "count", "total", "统计"),
        "secondary": ("平均", "均值", "average", "avg", "mean"),
    },
    QueryType.KPI_GROUPED: {
        "primary": ("按照", "按", "分组", "每个", "各个", "group by", "by", "各"),
        "secondary": ("统计", "计算", "汇总", "sum", "平均", "数量"),
    },
    QueryType.TREND_TIME: {
        "primary": ("趋势", "走势", "变化", "增长", "下降", "trend",
                    "按天", "按周", "按月", "按年", "daily", "monthly"),
        "secondary": ("时间", "日期", "历史", "time", "date", "over time"),
    },
    QueryType.DISTRIBUTION: {
        "primary": ("分布", "占比", "比例", "百分比", "distribution",
                    "percentage", "proportion", "构成"),
        "secondary": ("各", "每个", "不同"),
    },
    QueryType.TOPN: {
        "primary": ("排名", "排行", "前", "top", "top n", "最多", "最少",
                    "最高", "最低", "highest", "lowest"),
        "secondary": ("前n", "前十", "前5", "top 10", "top 5"),
    },
    QueryType.COMPARISON: {
        "primary": ("对比", "比较", "差异", "compare", "vs", "versus", "相比", "比"),
        "secondary": ("和", "与", "and", "between"),
    },
}

PRIMARY_WEIGHT = 2
SECONDARY_WEIGHT = 1
GROUPED_BOOST = 0.5

DOMAIN_TERMS: Dict[str, Tuple[str, ...]] = {
    "ecommerce": ("订单", "用户", "商品", "销售额", "GMV", "客单价", "转化率", "复购",
                  "order", "user", "product", "sales", "revenue", "conversion",
                  "repurchase"),
    "finance": ("交易", "金额", "收入", "支出", "余额", "利润", "手续费", "流水",
                "transaction", "amount", "profit", "balance", "fee", "flow"),
    "retail": ("销售", "库存", "门店", "客流", "坪效", "动销率", "SKU", "周转",
               "sales", "inventory", "store", "traffic", "turnover", "sku"),
    "general": ("数据", "记录", "条数", "统计", "data", "record", "count", "total"),
}

# Matched after 前; longest words first so that 前五十 is not read as 前五.
CHINESE_NUMERALS: Tuple[Tuple[str, int], ...] = (
    ("二十", 20),
    ("五十", 50),
    ("百", 100),
    ("十", 10),
    ("五", 5),
    ("三", 3),
)

TOP_N_DIGIT_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r"top\s*(\d+)", re.IGNORECASE),
    re.compile(r"前\s*(\d+)"),
)


# =============================================================================
# COLUMN PATTERNS
# =============================================================================

COLUMN_PATTERNS: Dict[str, Tuple[Pattern, ...]] = {
    "amount": (
        re.compile(r"(^|_)(amount|price|cost|fee|revenue|sales|profit|payment|balance|total|"
                   r"subtotal|discount|tax|rate|ratio|percent|percentage|commission|refund|"
                   r"wage|salary|bonus|income|expense)($|_)", re.IGNORECASE),
        re.compile(r"金额|价格|费用|收入|销售额|利润|支付|余额|总计|小计|折扣|税|汇率|税率|"
                   r"利率|比率|百分比|佣金|退款|工资|奖金"),
    ),
    "quantity": (
        re.compile(r"(^|_)(quantity|qty|count|num|number|volume|stock|inventory)($|_)",
                   re.IGNORECASE),
        re.compile(r"数量|库存|存货"),
    ),
    "category": (
        re.compile(r"(^|_)(category|class|group|segment|tag|label|type|dept|department|"
                   r"region|area|location)($|_)", re.IGNORECASE),
        re.compile(r"类别|组别|标签|类型|部门|区域|地区|位置"),
    ),
    "time": (
        re.compile(r"(^|_)(time|date|timestamp|datetime|created|updated|modified|deleted|"
                   r"year|month|day|hour|minute|second)($|_)", re.IGNORECASE),
        re.compile(r"时间|日期|创建|更新|修改|删除|年|月|日|时|分|秒"),
    ),
    "status": (
        re.compile(r"(^|_)(status|state|stage|phase|condition|flag|active|enabled|disabled|"
                   r"approved|rejected|pending|completed|cancelled|finished|processing)($|_)",
                   re.IGNORECASE),
        re.compile(r"状态|阶段|条件|标志|启用|禁用|已批准|已拒绝|待处理|已完成|已取消|处理中"),
    ),
    "customer": (
        re.compile(r"(^|_)(customer|client|user|member|buyer|purchaser)($|_)", re.IGNORECASE),
        re.compile(r"客户|用户|会员|买家|购买者"),
    ),
    "product": (
        re.compile(r"(^|_)(product|item|goods|sku|commodity)($|_)", re.IGNORECASE),
        re.compile(r"商品|产品|货品|物品"),
    ),
    "address": (
        re.compile(r"(^|_)(address|location|province|city|district|street|zip|postal)($|_)",
                   re.IGNORECASE),
        re.compile(r"地址|位置|省|市|区|街道|邮编"),
    ),
    "order": (
        re.compile(r"(^|_)(order)($|_)", re.IGNORECASE),
        re.compile(r"订单"),
    ),
    "id": (
        re.compile(r"_id$|^id$|uuid|guid|key|code|number$", re.IGNORECASE),
        re.compile(r"编号|代码$"),
    ),
}


# =============================================================================
# RFM DETECTION
# =============================================================================

PRECOMPUTED_RFM_NAMES: Tuple[str, ...] = ("recency", "frequency", "monetary")


def _exact(names: List[str]) -> Tuple[Pattern, ...]:
    return tuple(re.compile(f"^{name}$", re.IGNORECASE) for name in names)


# Level 1: whole-name matches only (checked before the fuzzy amount patterns).
PRECISE_AMOUNT_PATTERNS: Tuple[Pattern, ...] = _exact([
    # order amount
    "订单金额", "总金额", "实付金额", "应付金额", "成交金额",
    r"order[_\s]*amount", r"total[_\s]*amount", r"paid[_\s]*amount",
    r"payable[_\s]*amount", r"transaction[_\s]*amount",
    # payment (exact only; 支付时间 must not match)
    "支付金额", r"payment[_\s]*amount",
    # price
    "单价", "价格", "总价", "商品价格", "price",
    r"unit[_\s]*price", r"total[_\s]*price", r"item[_\s]*price", r"product[_\s]*price",
    # fees
    "运费", "手续费", "服务费", "优惠金额", "折扣金额",
    r"shipping[_\s]*fee", r"service[_\s]*fee", r"handling[_\s]*fee", r"discount[_\s]*amount",
    # revenue / cost
    "收入", "销售额", "成本", "利润", "revenue", "sales", "cost", "profit",
    # generic
    "金额", "amount",
])

# Ordered tiers: every column is tried against tier 1 before tier 2 is used.
CUSTOMER_ID_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r"(^|_)(customer_id|customer_code|cust_id|client_id)($|_)", re.IGNORECASE),
    *_exact(["顾客ID", "顾客编号", "客户ID", "客户编号"]),
    re.compile(r"(^|_)(user_id|member_id|buyer_id|purchaser_id)($|_)", re.IGNORECASE),
    *_exact(["用户ID", "会员编号", "会员ID", "买家ID"]),
    re.compile(r"(^|_)(customer|client|user|member|buyer|purchaser)[_\s]?(id|no|code|key)($|_)",
               re.IGNORECASE),
    re.compile(r"(客户|用户|会员|买家|购买者).*(ID|编号|号)", re.IGNORECASE),
)

ORDER_ID_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r"(^|_)(order_id|order_no|order_number|transaction_id|trans_id)($|_)",
               re.IGNORECASE),
    re.compile(r"订单编号|订单号|交易ID"),
)

ORDER_DATE_PATTERNS: Tuple[Pattern, ...] = COLUMN_PATTERNS["time"]

# Level 2 exclusions: fuzzy amount matches that are not money.
AMOUNT_EXCLUSIONS: Dict[str, Tuple[Tuple[str, ...], Pattern]] = {
    "id/serial": (
        ("流水号", "单号", "编号", "序号", "_id"),
        re.compile(r"(id|number|no|serial|code)$", re.IGNORECASE),
    ),
    "method/type": (
        ("方式", "类型", "方法"),
        re.compile(r"(method|type|way|mode)$", re.IGNORECASE),
    ),
    "status": (
        ("状态",),
        re.compile(r"(status|state)$", re.IGNORECASE),
    ),
    "time/date": (
        ("时间", "日期"),
        re.compile(r"(date|time|timestamp|datetime|created|updated)$", re.IGNORECASE),
    ),
}
