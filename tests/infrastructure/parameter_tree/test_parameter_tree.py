import unittest

import numpy as np

from src.treednn.domain._errors import StructuralMismatchError
from src.treednn.infrastructure._manifolds import EuclideanManifold, SphereManifold
from src.treednn.infrastructure._parameter_tree import (
    ParameterTree,
    add,
    scale,
    sub,
    zeros_like,
)


def _tree(seed: int = 0) -> ParameterTree:
    rng = np.random.default_rng(seed)
    return ParameterTree(
        {
            "l1": {
                "weight": rng.standard_normal((4, 3)),
                "bias": rng.standard_normal((3,)),
            },
            "l2": {
                "weight": rng.standard_normal((3, 2)),
                "bias": rng.standard_normal((2,)),
            },
        }
    )


class TestParameterTreeEnumeration(unittest.TestCase):
    def test_addresses_follow_declared_order(self):
        self.assertEqual(
            _tree().addresses(),
            [("l1", "weight"), ("l1", "bias"), ("l2", "weight"), ("l2", "bias")],
        )

    def test_enumeration_is_stable(self):
        t = _tree()
        self.assertEqual(t.addresses(), t.addresses())
        self.assertEqual(t.signature(), _tree(seed=1).signature())

    def test_leaf_lookup_by_address(self):
        t = _tree()
        leaf = t[("l2", "bias")]
        self.assertEqual(leaf.shape, (2,))
        self.assertIs(t.get(("l2", "bias")), leaf)
        self.assertIn(("l1", "weight"), t)
        self.assertNotIn(("l3", "weight"), t)

    def test_get_on_subtree_raises(self):
        with self.assertRaises(KeyError):
            _tree().get("l1")

    def test_set_writes_in_place(self):
        t = _tree()
        leaf = t.get(("l1", "bias"))
        t.set(("l1", "bias"), np.ones(3))
        self.assertIs(t.get(("l1", "bias")), leaf)
        np.testing.assert_array_equal(leaf, np.ones(3))

    def test_set_rejects_wrong_shape(self):
        with self.assertRaises(ValueError):
            _tree().set(("l1", "bias"), np.ones(4))

    def test_len_and_num_scalars(self):
        t = _tree()
        self.assertEqual(len(t), 4)
        self.assertEqual(t.num_scalars(), 12 + 3 + 6 + 2)

    def test_empty_subtree_does_not_change_signature(self):
        t = _tree()
        with_empty = _tree()
        with_empty["activation"] = ParameterTree()
        self.assertTrue(t.is_congruent(with_empty))


class TestParameterTreeCongruence(unittest.TestCase):
    def test_zeros_like_is_congruent_and_zero(self):
        t = _tree()
        z = zeros_like(t)
        self.assertTrue(t.is_congruent(z))
        for leaf in z.leaves():
            self.assertFalse(np.any(leaf))

    def test_shape_difference_breaks_congruence(self):
        a = ParameterTree({"w": np.zeros((2, 2))})
        b = ParameterTree({"w": np.zeros((2, 3))})
        self.assertFalse(a.is_congruent(b))
        with self.assertRaises(StructuralMismatchError):
            a.check_congruent(b)

    def test_order_difference_breaks_congruence(self):
        a = ParameterTree([("w", np.zeros(2)), ("b", np.zeros(2))])
        b = ParameterTree([("b", np.zeros(2)), ("w", np.zeros(2))])
        self.assertFalse(a.is_congruent(b))

    def test_extra_leaf_breaks_congruence(self):
        a = ParameterTree({"w": np.zeros(2)})
        b = ParameterTree({"w": np.zeros(2), "b": np.zeros(1)})
        with self.assertRaises(StructuralMismatchError) as cm:
            a.check_congruent(b, where="test")
        self.assertIsNone(cm.exception.expected)
        self.assertIn("test", str(cm.exception))

    def test_non_tree_is_not_congruent(self):
        with self.assertRaises(StructuralMismatchError):
            _tree().check_congruent({"l1": {}})  # type: ignore[arg-type]


class TestParameterTreeArithmetic(unittest.TestCase):
    def test_add_sub_scale(self):
        a, b = _tree(0), _tree(1)
        s = add(a, b)
        d = sub(a, b)
        k = scale(2.0, a)
        for addr in a.addresses():
            np.testing.assert_allclose(s[addr], a[addr] + b[addr])
            np.testing.assert_allclose(d[addr], a[addr] - b[addr])
            np.testing.assert_allclose(k[addr], 2.0 * a[addr])

    def test_operators_match_functions(self):
        a, b = _tree(0), _tree(1)
        self.assertTrue((a + b).allclose(add(a, b)))
        self.assertTrue((a - b).allclose(sub(a, b)))
        self.assertTrue((3.0 * a).allclose(a * 3.0))
        self.assertTrue((a / 2.0).allclose(a * 0.5))
        self.assertTrue((-a).allclose(a * -1.0))

    def test_zero_is_additive_identity(self):
        a = _tree()
        self.assertTrue((a + a.zeros_like()).allclose(a))

    def test_arithmetic_does_not_mutate_operands(self):
        a, b = _tree(0), _tree(1)
        before = a.copy()
        _ = a + b
        _ = a * 5.0
        self.assertTrue(a.allclose(before))

    def test_mismatched_addition_raises(self):
        a = ParameterTree({"w": np.zeros(2)})
        b = ParameterTree({"v": np.zeros(2)})
        with self.assertRaises(StructuralMismatchError):
            _ = a + b

    def test_assign_copies_values_into_leaves(self):
        a, b = _tree(0), _tree(1)
        leaf = a.get(("l1", "weight"))
        a.assign(b)
        self.assertIs(a.get(("l1", "weight")), leaf)
        self.assertTrue(a.allclose(b))

    def test_copy_is_independent(self):
        a = _tree()
        c = a.copy()
        c.get(("l1", "bias"))[...] = 100.0
        self.assertFalse(np.any(a.get(("l1", "bias")) == 100.0))


class TestManifolds(unittest.TestCase):
    def test_euclidean_is_flat(self):
        m = EuclideanManifold()
        p = np.array([1.0, 2.0])
        g = np.array([0.5, -0.5])
        np.testing.assert_array_equal(m.tangent_vector(p, g), g)
        np.testing.assert_array_equal(m.retract(p, g), p + g)

    def test_sphere_tangent_is_orthogonal(self):
        m = SphereManifold()
        p = m.project(np.array([3.0, 4.0, 0.0]))
        g = np.array([1.0, 1.0, 1.0])
        v = m.tangent_vector(p, g)
        self.assertAlmostEqual(float(np.dot(v, p)), 0.0, places=12)

    def test_sphere_retraction_has_unit_norm(self):
        m = SphereManifold()
        p = m.project(np.array([1.0, 1.0]))
        q = m.retract(p, np.array([0.3, -0.1]))
        self.assertAlmostEqual(float(np.linalg.norm(q)), 1.0, places=12)

    def test_tree_uses_subtree_manifolds(self):
        sphere = ParameterTree({"u": np.array([1.0, 0.0])}, manifold=SphereManifold())
        tree = ParameterTree({"flat": np.array([1.0, 0.0]), "sphere": sphere})
        direction = ParameterTree(
            {"flat": np.array([0.0, 1.0]), "sphere": {"u": np.array([0.0, 1.0])}}
        )
        moved = tree.moved(direction)
        np.testing.assert_allclose(moved[("flat",)], [1.0, 1.0])
        np.testing.assert_allclose(moved[("sphere", "u")], [np.sqrt(0.5), np.sqrt(0.5)])


if __name__ == "__main__":
    unittest.main()
