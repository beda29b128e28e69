import unittest

import numpy as np

from fem_dof.dofmngr.dof_manager import DOFManager
from fem_dof.dofmngr.field_pattern import BasisFieldPattern
from fem_dof.linalg.comm import run_collective
from fem_dof.mesh.cell_topology import CellTopology
from fem_dof.mesh.conn_manager import create_conn_managers
from fem_dof.mesh.core_mesh import CoreMesh
from tests.common_meshes import create_3x3_quad_mesh_fixture, create_two_triangle_fixture

TRI = CellTopology.from_name("triangle")
QUAD = CellTopology.from_name("quadrilateral")


def entity_gids(dof_manager):
    """``{(entity_key, field_num): gids}`` over the rank's elements."""
    conn = dof_manager.get_conn_manager()
    out = {}
    for block_id in conn.get_element_block_ids():
        agg = dof_manager.get_field_agg_pattern(block_id)
        sub_cells = agg.geom_pattern.sub_cells()
        for e in conn.get_element_block(block_id):
            gids = dof_manager.get_element_gids(e)
            for key, (dim, sc) in zip(conn.get_connectivity(e), sub_cells):
                for field_num in agg.field_ids:
                    offsets = dof_manager.get_gid_field_offsets_by_sub_cell(
                        block_id, field_num, dim, sc
                    )
                    if offsets:
                        entry = [gids[o] for o in offsets]
                        if out.setdefault((key, field_num), entry) != entry:
                            raise AssertionError(f"Entity {key} numbered twice on one rank.")
    return out


def build_and_collect(conns, fields):
    """Builds a DOF manager on every rank and gathers what the tests inspect."""

    def work(comm):
        dm = DOFManager(conns[comm.rank], comm)
        for args in fields:
            dm.add_field(*args)
        dm.build_global_unknowns()

        owned = dm.get_map()
        overlap = dm.get_overlap_map()
        imported = dm.get_overlap_import().apply(owned.gids.astype(float))
        exported = dm.get_overlap_export().apply(np.ones(overlap.num_my_elements))
        return {
            "num_global": dm.num_global,
            "element_gids": [
                dm.get_element_gids(e) for e in range(conns[comm.rank].num_elements)
            ],
            "entities": entity_gids(dm),
            "owned": dm.get_owned_indices(),
            "overlap": dm.get_owned_and_shared_indices(),
            "overlap_graph": dm.get_overlap_graph().to_dict(),
            "graph": dm.get_graph().to_dict(),
            "imported": imported,
            "exported": exported,
        }

    return run_collective(work, len(conns))


class TestTwoRankSharedNode(unittest.TestCase):

    def setUp(self):
        mesh, parts, _ = create_two_triangle_fixture()
        self.conns = create_conn_managers(mesh, parts=parts)

    def test_shared_nodes(self):
        r0, r1 = build_and_collect(self.conns, [("u", BasisFieldPattern.nodal(TRI))])
        # E0 = {n0, n1, n2} on rank 0, E1 = {n1, n3, n2} on rank 1
        self.assertEqual(r0["element_gids"], [[0, 1, 2]])
        self.assertEqual(r1["element_gids"], [[1, 3, 2]])
        for node in (1, 2):
            key = ((0, (node,)), 0)
            self.assertEqual(r0["entities"][key], r1["entities"][key])
        self.assertEqual(r0["owned"], [0, 1, 2])
        self.assertEqual(r1["owned"], [3])
        self.assertEqual(r1["overlap"], [3, 1, 2])

    def test_transfer(self):
        r0, r1 = build_and_collect(self.conns, [("u", BasisFieldPattern.nodal(TRI))])
        np.testing.assert_array_equal(r1["imported"], [3.0, 1.0, 2.0])
        np.testing.assert_array_equal(r0["exported"], [1.0, 2.0, 2.0])
        np.testing.assert_array_equal(r1["exported"], [1.0])

    def test_graph(self):
        r0, r1 = build_and_collect(self.conns, [("u", BasisFieldPattern.nodal(TRI))])
        self.assertEqual(r0["graph"], {0: [0, 1, 2], 1: [0, 1, 2, 3], 2: [0, 1, 2, 3]})
        self.assertEqual(r1["graph"], {3: [1, 2, 3]})


class TestDistributedProperties(unittest.TestCase):
    """Properties that must hold for any partition of any mesh."""

    def check_properties(self, results, expected_num_global):
        num_global = results[0]["num_global"]
        self.assertEqual(num_global, expected_num_global)
        self.assertTrue(all(r["num_global"] == num_global for r in results))

        # uniqueness: one set of GIDs per (entity, field) pair, none reused
        merged = {}
        for r in results:
            for key, gids in r["entities"].items():
                self.assertEqual(merged.setdefault(key, gids), gids)
        all_gids = [g for gids in merged.values() for g in gids]
        self.assertEqual(sorted(all_gids), list(range(num_global)))
        element_gids = {g for r in results for gids in r["element_gids"] for g in gids}
        self.assertEqual(element_gids, set(range(num_global)))

        # ownership partition
        owned = [g for r in results for g in r["owned"]]
        self.assertEqual(sorted(owned), list(range(num_global)))
        for r in results:
            self.assertTrue(set(r["owned"]) <= set(r["overlap"]))
            local = {g for gids in r["element_gids"] for g in gids}
            self.assertEqual(set(r["overlap"]), local)

        # owned graph rows are the union of every rank's overlap rows
        for r in results:
            for gid, cols in r["graph"].items():
                expected = set()
                for other in results:
                    expected.update(other["overlap_graph"].get(gid, []))
                self.assertEqual(cols, sorted(expected))

        # import and export
        for r in results:
            np.testing.assert_array_equal(r["imported"], r["overlap"])
        copies = {}
        for r in results:
            for g in r["overlap"]:
                copies[g] = copies.get(g, 0) + 1
        for r in results:
            np.testing.assert_array_equal(r["exported"], [copies[g] for g in r["owned"]])

    def test_quad_mixed_fields(self):
        mesh = CoreMesh.create_structured_quad_mesh(4, 4)
        conns = create_conn_managers(mesh, n_parts=2, partition_method="hierarchical")
        fields = [
            ("u", BasisFieldPattern.lagrange2(QUAD)),
            ("p", BasisFieldPattern.cell(QUAD)),
        ]
        results = build_and_collect(conns, fields)
        # 25 nodes + 40 edges + 16 cells for u, 16 cells for p
        self.check_properties(results, 97)

    def test_block_restricted_field(self):
        mesh, parts, _ = create_3x3_quad_mesh_fixture()
        conns = create_conn_managers(mesh, parts=parts)
        fields = [
            ("u", BasisFieldPattern.nodal(QUAD)),
            ("p", BasisFieldPattern.nodal(QUAD), 1),
        ]
        results = build_and_collect(conns, fields)
        # 16 nodes for u, 12 nodes of columns 1-2 for p
        self.check_properties(results, 28)

    def test_tri_edges_four_ranks(self):
        mesh = CoreMesh.create_structured_tri_mesh(4, 4)
        conns = create_conn_managers(mesh, n_parts=4, partition_method="hierarchical")
        fields = [
            ("u", BasisFieldPattern.nodal(TRI)),
            ("E", BasisFieldPattern.edge(TRI)),
        ]
        results = build_and_collect(conns, fields)
        # 25 nodes + 56 edges
        self.check_properties(results, 81)

    def test_empty_registry(self):
        mesh, parts, _ = create_two_triangle_fixture()
        results = build_and_collect(create_conn_managers(mesh, parts=parts), [])
        for r in results:
            self.assertEqual(r["num_global"], 0)
            self.assertEqual(r["owned"], [])
            self.assertEqual(r["overlap"], [])
            self.assertEqual(r["element_gids"], [[]])

    def test_determinism(self):
        mesh = CoreMesh.create_structured_quad_mesh(4, 4)
        conns = create_conn_managers(mesh, n_parts=2, partition_method="hierarchical")
        fields = [("u", BasisFieldPattern.lagrange2(QUAD))]
        first = [r["element_gids"] for r in build_and_collect(conns, fields)]
        second = [r["element_gids"] for r in build_and_collect(conns, fields)]
        self.assertEqual(first, second)

    def test_reset_cycle(self):
        mesh = CoreMesh.create_structured_quad_mesh(3, 2)
        conns = create_conn_managers(mesh, n_parts=2, partition_method="hierarchical")

        def work(comm):
            dm = DOFManager(conns[comm.rank], comm)
            dm.add_field("u", BasisFieldPattern.lagrange2(QUAD))
            dm.build_global_unknowns()
            first = [dm.get_element_gids(e) for e in range(conns[comm.rank].num_elements)]
            conn = dm.reset_indices()
            dm.set_conn_manager(conn, comm)
            dm.build_global_unknowns()
            second = [dm.get_element_gids(e) for e in range(conns[comm.rank].num_elements)]
            return first == second, dm.get_num_fields()

        for same, num_fields in run_collective(work, 2):
            self.assertTrue(same)
            self.assertEqual(num_fields, 1)

    def test_divergent_slot_counts(self):
        """Ranks registering different patterns for a shared field fail together."""
        mesh, parts, _ = create_two_triangle_fixture()
        conns = create_conn_managers(mesh, parts=parts)

        def work(comm):
            dm = DOFManager(conns[comm.rank], comm)
            dm.add_field("u", BasisFieldPattern(TRI, {0: comm.rank + 1}))
            dm.build_global_unknowns()

        with self.assertRaises(ValueError):
            run_collective(work, 2)

    def test_block_conflict_raises_on_every_rank(self):
        """A conflict seen only by the rank holding both blocks fails every rank."""
        mesh = CoreMesh.create_structured_quad_mesh(3, 1, split_blocks=True)
        # rank 0 holds a block-0 and a block-1 cell, rank 1 only a block-1 cell
        conns = create_conn_managers(mesh, parts=np.array([0, 0, 1]))

        def work(comm):
            dm = DOFManager(conns[comm.rank], comm)
            dm.add_field("u", BasisFieldPattern.nodal(QUAD), 0)
            dm.add_field("u", BasisFieldPattern(QUAD, {0: 2}), 1)
            try:
                dm.build_global_unknowns()
            except ValueError as ex:
                return str(ex)
            return None

        messages = run_collective(work, 2)
        self.assertEqual(messages[0], messages[1])
        self.assertIn("in different blocks", messages[0])


if __name__ == "__main__":
    unittest.main()
