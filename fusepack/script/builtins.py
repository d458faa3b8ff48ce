"""Built-in namespaces visible to every target without type files."""
from __future__ import annotations

from typing import Any, Dict

from ..namespace import NamespaceNode


BUILTIN_NAMESPACES: Dict[str, Dict[str, Any]] = {
    'motion': {
        'functions': {
            'move': ['steps'],
            'turn_right': ['degrees'],
            'turn_left': ['degrees'],
            'goto': ['target'],
            'goto_xy': ['x', 'y'],
            'glide': ['secs', 'x', 'y'],
            'point_in_direction': ['direction'],
            'point_towards': ['target'],
            'change_x': ['dx'],
            'set_x': ['x'],
            'change_y': ['dy'],
            'set_y': ['y'],
            'if_on_edge_bounce': [],
            'set_rotation_style': ['style'],
        },
        'externs': {
            'x_position': 'number',
            'y_position': 'number',
            'direction': 'number',
        },
    },
    'looks': {
        'functions': {
            'say': ['message'],
            'say_for': ['message', 'secs'],
            'think': ['message'],
            'think_for': ['message', 'secs'],
            'switch_costume': ['costume'],
            'next_costume': [],
            'switch_backdrop': ['backdrop'],
            'next_backdrop': [],
            'change_size': ['change'],
            'set_size': ['size'],
            'change_effect': ['effect', 'change'],
            'set_effect': ['effect', 'value'],
            'clear_effects': [],
            'show': [],
            'hide': [],
            'go_to_layer': ['front_back'],
            'go_layers': ['direction', 'num'],
        },
        'externs': {
            'costume_number': 'number',
            'backdrop_number': 'number',
            'size': 'number',
        },
    },
    'sound': {
        'functions': {
            'play': ['sound'],
            'play_until_done': ['sound'],
            'stop_all': [],
            'change_volume': ['change'],
            'set_volume': ['volume'],
        },
        'externs': {
            'volume': 'number',
        },
    },
    'events': {
        'functions': {
            'broadcast': ['message'],
            'broadcast_and_wait': ['message'],
        },
    },
    'control': {
        'functions': {
            'wait': ['secs'],
            'wait_until': ['condition'],
            'stop': ['option'],
            'create_clone': ['target'],
            'delete_this_clone': [],
        },
    },
    'sensing': {
        'functions': {
            'ask': ['question'],
            'touching': ['target'],
            'touching_color': ['color'],
            'distance_to': ['target'],
            'key_pressed': ['key'],
            'reset_timer': [],
        },
        'externs': {
            'answer': 'string',
            'mouse_down': 'boolean',
            'mouse_x': 'number',
            'mouse_y': 'number',
            'loudness': 'number',
            'timer': 'number',
            'username': 'string',
        },
    },
    'operators': {
        'functions': {
            'random': ['from', 'to'],
            'join': ['a', 'b'],
            'letter_of': ['index', 'text'],
            'length': ['text'],
            'contains': ['text', 'part'],
            'round': ['num'],
            'mathop': ['op', 'num'],
        },
    },
    'pen': {
        'functions': {
            'clear': [],
            'stamp': [],
            'pen_down': [],
            'pen_up': [],
            'set_color': ['color'],
            'change_size': ['change'],
            'set_size': ['size'],
        },
    },
    'data': {
        'functions': {
            'show_variable': ['variable'],
            'hide_variable': ['variable'],
            'show_list': ['list'],
            'hide_list': ['list'],
        },
    },
}


def builtin_namespaces() -> NamespaceNode:
    """Return a fresh tree holding the built-in namespaces."""
    return NamespaceNode.from_dict({'children': BUILTIN_NAMESPACES})
