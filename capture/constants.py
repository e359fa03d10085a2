"""
capture.constants
常量定义。
"""

# 标记编码：零宽分隔符 + U+FE00..U+FE0F 变体选择符（每个字节两个码点，高半字节在前）
ZWSP = "\u200B"
ENCODING_OFFSET = 0xFE00

# 页面端文本扫描正则；前后断言用于避开序列化到属性值里的标记
TARGET_PATTERN = r"""(?<!["'<])\u200B([\uFE00-\uFE0F]+)([^\u200B]*?)\u200B(?![^<>]*">)"""

# 父元素为这些标签时，其文本节点不产生片段
SKIPPED_TAGS = frozenset({"SCRIPT", "STYLE", "NOSCRIPT", "TEXTAREA", "HEAD"})

# 片段上的显式字段（元数据不得覆盖）与打包时需剔除的保留字段
SEGMENT_FIELDS = ("text", "x", "y", "width", "height")
RESERVED_SEGMENT_KEYS = frozenset(SEGMENT_FIELDS + ("screenshot", "id", "url", "timestamp"))
DECODING_ERROR_KEY = "decodingError"

# 截图
SCREENSHOT_COMMAND = "Page.captureScreenshot"
SCREENSHOT_PARAMS = {
    "format": "png",
    "captureBeyondViewport": True,
    "fromSurface": True,
}
PNG_DATA_URL_PREFIX = "data:image/png;base64,"
PRIVILEGED_URL_PREFIXES = ("chrome://", "edge://", "about:", "devtools://", "chrome-extension://")

# 存储键空间
CAPTURED_PAGES_INDEX_KEY = "lqaBossCapturedPagesIndex"
PAGE_DATA_PREFIX = "lqa_page_"

# 流程归档
FLOW_METADATA_FILE = "flow_metadata.json"
FLOW_FILE_EXTENSION = ".lqaboss"
FLOW_MIME_TYPE = "application/vnd.lqaboss-flow"
DEFAULT_FLOW_PREFIX = "lqa_flow_"
