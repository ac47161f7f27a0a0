"""
Tree nodes built on BaseObject.

Children are owned through the ``children`` parameter (reference counted,
cloned, compared and serialized with the node). The parent link is a weak
reference outside the registry: it never keeps a parent alive and is ignored
by clone, equality, hashing and serialization, which rebuild it from the
children lists instead.
"""

from typing import Any, Dict, Iterator, List, Optional
import logging
import weakref

from paramkit.base_object import BaseObject
from paramkit.properties import ParameterProperties

logger = logging.getLogger(__name__)


class TreeNode(BaseObject):
    """
    N-ary tree node with a dict payload.

    Binary trees use left()/right() for the first two children.

    Example:
        root = TreeNode({'feature': 0})
        root.new_child({'label': 1})
        root.new_child({'label': -1})
        [node.data for node in root.walk()]
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.data: Dict[str, Any] = dict(data or {})
        self.children: List['TreeNode'] = []
        self._parent: Optional[weakref.ref] = None
        self._adopted: List[weakref.ref] = []

        self.watch_param('data', description="Node payload", properties=ParameterProperties.MODEL)
        self.watch_param('children', description="Child nodes", properties=ParameterProperties.MODEL)
        self.add_callback_function('children', self._adopt_children)

    def _adopt_children(self) -> None:
        current = {id(child) for child in self.children}
        for handle in self._adopted:
            child = handle()
            if child is not None and id(child) not in current and child.parent() is self:
                child._parent = None
        for child in self.children:
            child._parent = self.weak()
        self._adopted = [child.weak() for child in self.children]

    def add_child(self, node: 'TreeNode') -> 'TreeNode':
        """Append ``node``; this node takes its own reference to it."""
        self.add('children', node.as_type(TreeNode))
        return node

    def new_child(self, data: Optional[Dict[str, Any]] = None) -> 'TreeNode':
        """Create a child owned solely by this node."""
        child = self.add_child(type(self)(data))
        child.unref()
        return child

    def parent(self) -> Optional['TreeNode']:
        return self._parent() if self._parent is not None else None

    def left(self) -> Optional['TreeNode']:
        return self.children[0] if self.children else None

    def right(self) -> Optional['TreeNode']:
        return self.children[1] if len(self.children) > 1 else None

    def is_leaf(self) -> bool:
        return not self.children

    def is_root(self) -> bool:
        return self.parent() is None

    def depth(self) -> int:
        """Number of ancestors."""
        depth = 0
        node = self.parent()
        while node is not None:
            depth += 1
            node = node.parent()
        return depth

    def walk(self) -> Iterator['TreeNode']:
        """Pre-order traversal starting at this node."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))
