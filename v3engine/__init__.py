"""
notion-v3 engine: the pure core.

  richtext    segmented rich text, decoration splicing, wire codec
  properties  schema-driven flattening of typed property values
  record_map  read-only {table: {id: entity}} snapshots
  patches     patch-shaped stream -> cumulative inference events
  inference   single-pass accumulator over the normalised stream
  operations  saveTransactions operation builders
  transforms  raw entity -> flat shape normalizers

Nothing here performs I/O; v3client wires it to the network.
"""

from v3engine.inference import (
    ChatResult,
    InferenceAccumulator,
    TokenUsage,
    parse_thread_message,
    process_inference_stream,
    strip_lang_tag,
)
from v3engine.patches import SlotState, apply_patch_or_ignore, normalize_patch_stream
from v3engine.properties import (
    build_property_value,
    describe_schema,
    flatten_properties,
    flatten_value,
    parse_schema,
)
from v3engine.record_map import RecordMap
from v3engine.richtext import (
    coerce_rich_text,
    decode_rich_text,
    encode_rich_text,
    extract_text_by_decoration,
    inject_anchor_by_text,
    inject_decoration,
    to_plain_text,
)
from v3engine.types import (
    CommentAnchor,
    DateRange,
    EmptyTarget,
    InvalidRange,
    PageMention,
    PropertySchema,
    RichTextError,
    Segment,
    StyleMark,
    TextNotFound,
    UnknownDecoration,
    UserMention,
)

__all__ = [
    "ChatResult",
    "InferenceAccumulator",
    "TokenUsage",
    "parse_thread_message",
    "process_inference_stream",
    "strip_lang_tag",
    "SlotState",
    "apply_patch_or_ignore",
    "normalize_patch_stream",
    "build_property_value",
    "describe_schema",
    "flatten_properties",
    "flatten_value",
    "parse_schema",
    "RecordMap",
    "coerce_rich_text",
    "decode_rich_text",
    "encode_rich_text",
    "extract_text_by_decoration",
    "inject_anchor_by_text",
    "inject_decoration",
    "to_plain_text",
    "CommentAnchor",
    "DateRange",
    "EmptyTarget",
    "InvalidRange",
    "PageMention",
    "PropertySchema",
    "RichTextError",
    "Segment",
    "StyleMark",
    "TextNotFound",
    "UnknownDecoration",
    "UserMention",
]
