"""Property-based tests for node and profile model validation."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from node_manager.models import ClusterConfig, KubernetesConfig, Node

ALNUM = "abcdefghijklmnopqrstuvwxyz0123456789"


# Custom strategies for generating valid test data
@st.composite
def valid_node_name(draw):
    """Generate valid RFC 1123 names."""
    num_labels = draw(st.integers(min_value=1, max_value=3))
    labels = []
    for _ in range(num_labels):
        # Each label: alphanumeric, can contain hyphens but not at start/end
        length = draw(st.integers(min_value=1, max_value=10))
        if length == 1:
            label = draw(st.sampled_from(ALNUM))
        else:
            start = draw(st.sampled_from(ALNUM))
            middle = "".join(
                draw(
                    st.lists(
                        st.sampled_from(ALNUM + "-"),
                        min_size=length - 2,
                        max_size=length - 2,
                    )
                )
            )
            end = draw(st.sampled_from(ALNUM))
            label = start + middle + end
        labels.append(label)
    return ".".join(labels)


@st.composite
def kubernetes_version(draw):
    major = draw(st.integers(min_value=1, max_value=2))
    minor = draw(st.integers(min_value=0, max_value=40))
    patch = draw(st.integers(min_value=0, max_value=20))
    return f"v{major}.{minor}.{patch}"


@given(name=valid_node_name())
def test_minimal_node_definition(name):
    """A node only needs a name; everything else has a default."""
    node = Node(name=name)

    assert node.name == name
    assert node.control_plane is False
    assert node.worker is True
    assert node.role == "worker"
    assert node.port == 8443
    assert node.ip == ""

    reconstructed = Node(**node.model_dump())
    assert reconstructed == node


@given(
    name=st.text(min_size=1, max_size=5).filter(
        lambda x: not x[0].isalnum() or not x[-1].isalnum() or ".." in x
    )
)
def test_invalid_node_name_rejected(name):
    """Invalid node names should be rejected."""
    with pytest.raises(ValueError):
        Node(name=name)


@given(port=st.one_of(st.integers(max_value=0), st.integers(min_value=65536)))
def test_invalid_port_rejected(port):
    with pytest.raises(ValueError):
        Node(name="node1", port=port)


@given(version=kubernetes_version())
def test_version_falls_back_to_profile(version):
    """A node without a pinned version runs the profile's version."""
    cc = ClusterConfig(
        name="dev",
        nodes=[Node(name="dev")],
        kubernetes_config=KubernetesConfig(kubernetes_version=version),
    )

    assert cc.version_for(cc.nodes[0]) == version


@given(version=st.text().filter(lambda x: not x.startswith("v")))
def test_version_without_prefix_rejected(version):
    with pytest.raises(ValueError):
        KubernetesConfig(kubernetes_version=version)


@given(names=st.lists(valid_node_name(), min_size=1, max_size=5, unique=True))
def test_add_then_remove_keeps_names_unique(names):
    """Adding every name once succeeds; a second add of any name fails."""
    cc = ClusterConfig(name="dev")
    for name in names:
        cc.add_node(Node(name=name))

    for name in names:
        with pytest.raises(ValueError):
            cc.add_node(Node(name=name))

    removed = cc.remove_node(names[0])
    assert removed.name == names[0]
    assert cc.find_node(names[0]) is None
    assert [n.name for n in cc.nodes] == names[1:]


def test_duplicate_names_rejected_on_construction():
    with pytest.raises(ValueError):
        ClusterConfig(name="dev", nodes=[Node(name="a"), Node(name="a")])
