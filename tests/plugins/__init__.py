from __future__ import annotations

from typing import TYPE_CHECKING

from _transmute.plugins import plugin_manager

if TYPE_CHECKING:
    from _transmute.xpath.context import ExprContext
    from _transmute.xpath.values import Value


@plugin_manager.register_xpath_function("is-last")
def is_last(context: ExprContext) -> bool:
    return context.position == context.context_size() - 1


@plugin_manager.register_xpath_function
def lowercase(_, string: Value) -> str:
    return string.to_string().lower()


@plugin_manager.register_xslt_instruction("shout")
def shout(transformation, element, context):
    transformation.output.add_text(
        transformation.attribute_value(element, "text", context, "").upper()
    )
