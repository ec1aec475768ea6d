"""
Tree Utility Functions

Traversal and analysis helpers for expression DAGs. Shared subexpressions
are visited once: identity, not structural equality, decides whether a node
was already seen.
"""

from typing import Dict, List, Set, Tuple

from ..core.node import Node


def get_all_nodes(node: Node) -> List[Node]:
    """
    Get every distinct node of the DAG in breadth-first order.

    Args:
        node: Root node

    Returns:
        List of distinct nodes, root first
    """
    seen: Set[int] = {id(node)}
    nodes_to_visit = [node]
    position = 0

    while position < len(nodes_to_visit):
        current_node = nodes_to_visit[position]
        position += 1
        for child in current_node.children():
            if id(child) not in seen:
                seen.add(id(child))
                nodes_to_visit.append(child)

    return nodes_to_visit


def topological_order(node: Node) -> List[Node]:
    """Distinct nodes ordered so that every child precedes its parents"""
    order: List[Node] = []
    done: Set[int] = set()
    stack: List[Tuple[Node, bool]] = [(node, False)]

    while stack:
        current_node, expanded = stack.pop()
        if id(current_node) in done:
            continue
        if expanded:
            done.add(id(current_node))
            order.append(current_node)
            continue
        stack.append((current_node, True))
        for child in reversed(current_node.children()):
            if id(child) not in done:
                stack.append((child, False))

    return order


def has_cycle(node: Node) -> bool:
    """True if some node is reachable from itself"""
    on_path: Set[int] = set()
    finished: Set[int] = set()
    stack: List[Tuple[Node, int]] = [(node, 0)]
    on_path.add(id(node))

    while stack:
        current_node, child_pos = stack[-1]
        children = current_node.children()
        if child_pos < len(children):
            stack[-1] = (current_node, child_pos + 1)
            child = children[child_pos]
            if id(child) in on_path:
                return True
            if id(child) not in finished:
                on_path.add(id(child))
                stack.append((child, 0))
        else:
            stack.pop()
            on_path.discard(id(current_node))
            finished.add(id(current_node))

    return False


def count_tree_nodes(node: Node) -> int:
    """Number of nodes the DAG would have if expanded to a tree"""
    counts: Dict[int, int] = {}
    for current_node in topological_order(node):
        counts[id(current_node)] = 1 + sum(counts[id(c)] for c in current_node.children())
    return counts[id(node)]
