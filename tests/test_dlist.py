from minikv.dlist import DList


def owners(head):
    result = []
    node = head.next
    while node is not head:
        result.append(node.owner)
        node = node.next
    return result


def owners_backward(head):
    result = []
    node = head.prev
    while node is not head:
        result.append(node.owner)
        node = node.prev
    return result


def test_new_head_is_empty():
    head = DList()
    assert head.empty()
    assert head.next is head
    assert head.prev is head


def test_insert_before_head_appends():
    head = DList()
    nodes = [DList(owner=name) for name in "abc"]
    for node in nodes:
        head.insert_before(node)
    assert not head.empty()
    assert owners(head) == ["a", "b", "c"]
    assert owners_backward(head) == ["c", "b", "a"]


def test_detach_middle_and_reinsert_moves_to_tail():
    head = DList()
    nodes = [DList(owner=name) for name in "abcd"]
    for node in nodes:
        head.insert_before(node)
    nodes[1].detach()
    assert owners(head) == ["a", "c", "d"]
    head.insert_before(nodes[1])
    assert owners(head) == ["a", "c", "d", "b"]
    assert owners_backward(head) == ["b", "d", "c", "a"]


def test_detach_all_leaves_empty():
    head = DList()
    nodes = [DList(owner=i) for i in range(5)]
    for node in nodes:
        head.insert_before(node)
    for node in nodes:
        node.detach()
    assert head.empty()
    assert owners(head) == []


def test_insert_before_non_head_node():
    head = DList()
    first = DList(owner="first")
    last = DList(owner="last")
    head.insert_before(first)
    head.insert_before(last)
    middle = DList(owner="middle")
    last.insert_before(middle)
    assert owners(head) == ["first", "middle", "last"]