"""
Topic filter matching for HiveLink.

``matches`` decides whether one concrete topic matches one filter.
``TopicFilterTree`` is a trie of filters for matching a topic against
many filters at once (client-side delivery filters and per-filter
message handlers). Both follow the same rules:

- '+' matches exactly one level, including an empty one
- '#' matches zero or more trailing levels
- any other level must match exactly (case-sensitive)
"""


def matches(topic, topic_filter):
    """
    Check whether a concrete topic matches a topic filter.

    Args:
        topic: str, concrete topic name (no wildcards)
        topic_filter: str, may contain '+' or '#' wildcards

    Returns:
        bool: True if the filter matches the topic
    """
    if topic_filter == '#':
        return True

    f_levels = topic_filter.split('/')
    t_levels = topic.split('/')
    f_count = len(f_levels)

    for fi, level in enumerate(f_levels):
        if level == '#':
            return fi == f_count - 1
        if fi >= len(t_levels):
            return False
        if level != '+' and level != t_levels[fi]:
            return False

    return len(t_levels) == f_count


def matches_any(topic, filters):
    """True if the topic matches at least one filter of an iterable."""
    for topic_filter in filters:
        if matches(topic, topic_filter):
            return True
    return False


class TopicNode:
    """Node in the topic filter trie."""
    __slots__ = ('children', 'values')

    def __init__(self):
        self.children = None     # str -> TopicNode (lazy, None until first child)
        self.values = None       # list of values stored for the filter ending here


def _ensure_children(node):
    """Create children dict on first use (lazy initialization)."""
    if node.children is None:
        node.children = {}
    return node.children


class TopicFilterTree:
    """
    Trie of topic filters mapping each filter to one or more values.

    Each level of a filter is one edge of the trie, so matching a topic
    walks only the branches that can match instead of testing every
    filter.
    """

    def __init__(self):
        self.root = TopicNode()
        self._count = 0

    def __len__(self):
        return self._count

    def __bool__(self):
        return self._count > 0

    def add(self, topic_filter, value=None):
        """
        Store a value under a topic filter.

        Args:
            topic_filter: str, may contain '+' or '#' wildcards
            value: Any object; defaults to the filter itself
        """
        if value is None:
            value = topic_filter
        node = self.root
        for level in topic_filter.split('/'):
            children = _ensure_children(node)
            if level not in children:
                children[level] = TopicNode()
            node = children[level]

        if node.values is None:
            node.values = []
        if value not in node.values:
            node.values.append(value)
            self._count += 1

    def remove(self, topic_filter, value=None):
        """
        Remove a value (or every value when None) stored under a filter.

        Returns:
            bool: True if anything was removed
        """
        path = []
        node = self.root
        for level in topic_filter.split('/'):
            if not node.children or level not in node.children:
                return False
            path.append((node, level))
            node = node.children[level]

        if not node.values:
            return False
        if value is None:
            removed = len(node.values)
            node.values = None
        elif value in node.values:
            node.values.remove(value)
            removed = 1
            if not node.values:
                node.values = None
        else:
            return False
        self._count -= removed

        # Prune the now empty branch bottom-up
        for parent, level in reversed(path):
            child = parent.children[level]
            if child.children or child.values:
                break
            del parent.children[level]
        return True

    def match(self, topic):
        """
        Find every value whose filter matches a concrete topic.

        Args:
            topic: str, concrete topic (no wildcards)

        Returns:
            list: matching values, each value at most once
        """
        levels = topic.split('/')
        result = []

        # Stack items: (node, level_index)
        stack = [(self.root, 0)]

        while stack:
            node, level_idx = stack.pop()

            if level_idx == len(levels):
                if node.values:
                    result.extend(node.values)
                # Trailing '#' also matches the parent level itself
                if node.children and '#' in node.children and node.children['#'].values:
                    result.extend(node.children['#'].values)
                continue

            if not node.children:
                continue

            current_level = levels[level_idx]

            if current_level in node.children:
                stack.append((node.children[current_level], level_idx + 1))

            if '+' in node.children and current_level != '+':
                stack.append((node.children['+'], level_idx + 1))

            if '#' in node.children and node.children['#'].values:
                result.extend(node.children['#'].values)

        unique = []
        for value in result:
            if value not in unique:
                unique.append(value)
        return unique

    def filters(self):
        """
        List every stored filter.

        Returns:
            list of str
        """
        found = []
        stack = [(self.root, [])]
        while stack:
            node, levels = stack.pop()
            if node.values and levels:
                found.append('/'.join(levels))
            if node.children:
                for level, child in node.children.items():
                    stack.append((child, levels + [level]))
        return sorted(found)

    def clear(self):
        self.root = TopicNode()
        self._count = 0
