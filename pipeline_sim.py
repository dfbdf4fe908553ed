"""
Four-Stage Pipeline Hazard Simulator
============================================================
A pure-Python simulation of a four-stage instruction pipeline
(Fetch, Decode, Execute, Write-Back) with data-hazard stalls.

  Dependency graph   — fixed-capacity DAG of instruction dependencies
  Pipeline simulator — cycle-by-cycle stage advance, bubble injection
  Reports            — sequential / overlapped / stalled cycle totals

Hazard model: operands are read in Execute and results are visible only
after Write-Back, with no forwarding.  The only hazard window is between
an instruction and the one immediately before it.

Input format:
    a b c d e f        <- line 1: the instructions, in program order
    b a                <- one "<dependent> <dependency>" pair per line
    e d

Run:
    python3 pipeline_sim.py                              # built-in demo program
    python3 pipeline_sim.py --file InstructionInputData.txt
"""

from __future__ import annotations
import argparse
import logging
import sys
from collections import deque
from typing import Deque, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────────────────

PIPELINE_DEPTH = 4                # stages an instruction passes through
MAX_INSTRUCTIONS = 25             # one slot per letter 'a'..'y'
DEFAULT_MAX_NODES = 10
BASE_CYCLES_PER_INSTRUCTION = 4   # non-overlapped cost of one instruction

FIRST_NODE_ID = "a"
LAST_NODE_ID = "y"
INVALID_NODE_ID: Optional[str] = None
INVALID_NODE_INDEX = -1

NOOP_INSTRUCTION = "-"


def normalize_node_id(node_id) -> Optional[str]:
    """Case-fold a node id; None if it is not a letter in 'a'..'y'."""
    if not isinstance(node_id, str) or len(node_id) != 1:
        return None
    folded = node_id.lower()
    if FIRST_NODE_ID <= folded <= LAST_NODE_ID:
        return folded
    return None


def previous_node_id(node_id: str) -> str:
    """The id of the instruction textually preceding *node_id*."""
    return chr(ord(node_id.lower()) - 1)

# ─────────────────────────────────────────────────────────────────────────────
# Dependency graph — edges and nodes
# ─────────────────────────────────────────────────────────────────────────────

class DirectedEdge:
    """
    An outgoing edge to *dest* carrying an informational *weight*
    (the dependency distance).  Identity and ordering use *dest* only,
    so an edge set holds at most one edge per destination.
    """

    __slots__ = ("dest", "weight")

    def __init__(self, dest: str, weight: int = 0):
        self.dest = dest
        self.weight = weight

    def __eq__(self, other):
        if not isinstance(other, DirectedEdge):
            return NotImplemented
        return self.dest == other.dest

    def __lt__(self, other: "DirectedEdge") -> bool:
        return self.dest < other.dest

    def __hash__(self):
        return hash(self.dest)

    def __repr__(self):
        return f"DirectedEdge(dest={self.dest!r}, weight={self.weight})"


class GraphNode:
    """A graph slot: node id plus its set of outgoing edges."""

    __slots__ = ("node_id", "_edges")

    def __init__(self, node_id: Optional[str] = INVALID_NODE_ID):
        self.node_id = node_id
        self._edges: Dict[str, DirectedEdge] = {}

    @property
    def is_valid(self) -> bool:
        return self.node_id != INVALID_NODE_ID

    @property
    def num_edges(self) -> int:
        return len(self._edges) if self.is_valid else 0

    def add_edge(self, dest: str, weight: int = 0) -> bool:
        """Add an edge; False if this slot is unused or *dest* is already present."""
        if not self.is_valid or dest in self._edges:
            return False
        self._edges[dest] = DirectedEdge(dest, weight)
        return True

    def has_edge(self, dest: str) -> bool:
        return dest in self._edges

    def edges(self) -> List[DirectedEdge]:
        return sorted(self._edges.values())

    def __repr__(self):
        return f"GraphNode({self.node_id!r}, edges={self.edges()})"


class DependencyGraph:
    """
    Fixed-capacity dependency DAG, stored as a list of node slots.

    A node's slot is a direct hash of its id (``ord(id) - ord('a')`` after
    case folding), so 'B' and 'b' share a slot.  Capacity is set once.
    Every mutator reports failure by returning False; nothing raises.
    """

    def __init__(self, max_nodes: int = DEFAULT_MAX_NODES):
        self.max_nodes = max_nodes
        self._num_nodes = 0
        self._nodes: List[GraphNode] = [GraphNode() for _ in range(max_nodes)]

    def _index(self, node_id) -> int:
        folded = normalize_node_id(node_id)
        if folded is None:
            return INVALID_NODE_INDEX
        return ord(folded) - ord(FIRST_NODE_ID)

    def _valid_index(self, index: int) -> bool:
        return 0 <= index < self.max_nodes

    def add_node(self, node_id) -> bool:
        index = self._index(node_id)
        if not self._valid_index(index):
            logger.debug("node %r rejected: outside graph capacity %d",
                         node_id, self.max_nodes)
            return False
        node = self._nodes[index]
        if node.is_valid:
            logger.debug("node %r rejected: already in graph", node_id)
            return False
        node.node_id = normalize_node_id(node_id)
        self._num_nodes += 1
        return True

    def add_edge(self, from_id, to_id, weight: int = 0) -> bool:
        src, dest = normalize_node_id(from_id), normalize_node_id(to_id)
        if src is None or dest is None:
            logger.debug("edge %r->%r rejected: unknown id", from_id, to_id)
            return False
        index = self._index(src)
        if not self._valid_index(index):
            return False
        return self._nodes[index].add_edge(dest, weight)

    def has_node(self, node_id) -> bool:
        index = self._index(node_id)
        return self._valid_index(index) and self._nodes[index].is_valid

    def has_edge_from(self, node_id, target) -> bool:
        """True if *node_id* is in the graph and depends on *target*."""
        if not self.has_node(node_id):
            return False
        dest = normalize_node_id(target)
        if dest is None:
            return False
        return self._nodes[self._index(node_id)].has_edge(dest)

    def node_count(self) -> int:
        return self._num_nodes

    def edge_count(self) -> int:
        return sum(node.num_edges for node in self._nodes)

    def node(self, node_id) -> Optional[GraphNode]:
        if not self.has_node(node_id):
            return None
        return self._nodes[self._index(node_id)]

    def __iter__(self) -> Iterator[GraphNode]:
        """Valid nodes in ascending id order, which is program order."""
        return (node for node in self._nodes if node.is_valid)

    def __len__(self):
        return self._num_nodes

# ─────────────────────────────────────────────────────────────────────────────
# Pipeline instruction state
# ─────────────────────────────────────────────────────────────────────────────

class Stage:
    """Pipeline stages in order of progress."""

    INVALID    = 0   # not yet fetched
    FETCH      = 1
    DECODE     = 2
    EXECUTE    = 3
    WRITE_BACK = 4
    COMPLETED  = 5   # waiting to leave the pipeline

    NAMES = {
        INVALID: "--", FETCH: "IF", DECODE: "ID",
        EXECUTE: "EX", WRITE_BACK: "WB", COMPLETED: "OK",
    }

    ACTIVE = (FETCH, DECODE, EXECUTE, WRITE_BACK)


class InstructionData:
    """One instruction in flight (or a bubble)."""

    __slots__ = ("instruction", "stage", "data_dependent")

    def __init__(self, instruction: str, stage: int = Stage.INVALID,
                 data_dependent: bool = False):
        self.instruction = instruction
        self.stage = stage
        # Bubbles never wait on anything.
        self.data_dependent = data_dependent and instruction != NOOP_INSTRUCTION

    @classmethod
    def noop(cls, stage: int = Stage.INVALID) -> "InstructionData":
        return cls(NOOP_INSTRUCTION, stage)

    @property
    def is_noop(self) -> bool:
        return self.instruction == NOOP_INSTRUCTION

    def __repr__(self):
        dep = "*" if self.data_dependent else ""
        return f"{self.instruction}{dep}:{Stage.NAMES.get(self.stage, '?')}"

# ─────────────────────────────────────────────────────────────────────────────
# Pipeline simulator
# ─────────────────────────────────────────────────────────────────────────────

class PipelineSim:
    """
    Four-stage in-order pipeline.

    ``pipeline`` holds the instructions in flight, newest at the left and
    oldest at the right.  ``queue`` holds instructions not yet fetched, in
    program order.  Once the queue drains, a bubble is fetched every cycle
    so the remaining instructions are pushed through.
    """

    def __init__(self, max_depth: int = PIPELINE_DEPTH, verbose: bool = False):
        self.cycle_count = 0
        self.stall_count = 0
        self.completed_count = 0
        self.max_depth = max_depth
        self.pipeline: Deque[InstructionData] = deque()
        self.queue: Deque[InstructionData] = deque()
        self.verbose = verbose

    def insert_instruction(self, instruction: InstructionData) -> int:
        """Queue an instruction for fetching; returns the queue length."""
        self.queue.append(instruction)
        return len(self.queue)

    # ── Main cycle ──────────────────────────────────────────────────────

    def advance_cycle(self) -> bool:
        """
        Execute one pipeline cycle.

        Returns True while real (non-bubble) instructions are still moving
        through Fetch..Write-Back.  After it returns False only bubbles
        remain; calling it again keeps fetching bubbles.
        """
        self.cycle_count += 1
        busy = False

        # ── Fetch a new instruction (or a bubble) ──
        if len(self.pipeline) <= self.max_depth:
            if self.queue:
                self.pipeline.appendleft(self.queue.popleft())
                busy = True
            else:
                self.pipeline.appendleft(InstructionData.noop())

        # ── Advance stages, oldest first ──
        i = len(self.pipeline) - 1
        while i >= 0:
            instr = self.pipeline[i]
            stage = instr.stage

            if stage == Stage.DECODE and instr.data_dependent:
                # Hold in Decode; a bubble takes this cycle's Execute slot.
                instr.data_dependent = False
                self.pipeline.insert(i + 1, InstructionData.noop(Stage.EXECUTE))
                self.stall_count += 1
                if not instr.is_noop:
                    busy = True
                break

            if stage == Stage.WRITE_BACK:
                instr.stage = Stage.COMPLETED
                if not instr.is_noop:
                    self.completed_count += 1
            elif stage != Stage.COMPLETED:
                instr.stage = stage + 1
                if not instr.is_noop:
                    busy = True
            i -= 1

        # ── Retire ──
        if self.pipeline and self.pipeline[-1].stage == Stage.COMPLETED:
            self.pipeline.pop()

        if self.verbose:
            self._print_state()
        return busy

    def run(self, max_cycles: int = 1000) -> List[List[str]]:
        """
        Run until no real instruction remains in flight or *max_cycles*
        is reached.  Returns the snapshot of every busy cycle.
        """
        trace = []
        for _ in range(max_cycles):
            if not self.advance_cycle():
                break
            trace.append(self.snapshot())
        else:
            logger.warning("pipeline still busy after %d cycles", max_cycles)
        return trace

    # ── Display ─────────────────────────────────────────────────────────

    def snapshot(self) -> List[str]:
        """Instructions occupying a stage, newest first; bubbles as '-'."""
        return [instr.instruction for instr in self.pipeline
                if instr.stage in Stage.ACTIVE]

    def _print_state(self):
        print(f"  [Cycle {self.cycle_count:4d}]  "
              f"queued={len(self.queue):<3d} "
              f"pipeline={list(self.pipeline)}  "
              f"stalls={self.stall_count}")

    def dump_stats(self):
        print("\n═══ Simulation Statistics ═══")
        print(f"  Cycles simulated:     {self.cycle_count}")
        print(f"  Instructions:         {self.completed_count}")
        print(f"  Pipeline stalls:      {self.stall_count}")

# ─────────────────────────────────────────────────────────────────────────────
# Input loader
# ─────────────────────────────────────────────────────────────────────────────

def parse_instruction_data(text: str, graph: DependencyGraph) -> int:
    """
    Populate *graph* from instruction data text.

    The first line lists the instructions; only the first character of each
    token is used and at most MAX_INSTRUCTIONS tokens are read.  The rest of
    the text is read as pairs of characters "<dependent> <dependency>".
    Edge weight is the dependency distance between the two instructions.
    Returns the number of instruction tokens read.
    """
    first_line, _, rest = text.partition("\n")

    count = 0
    for token in first_line.split():
        if count >= MAX_INSTRUCTIONS:
            logger.warning("only the first %d instructions are read",
                           MAX_INSTRUCTIONS)
            break
        if not graph.add_node(token[0]):
            logger.warning("instruction %r ignored", token)
        count += 1

    chars = [c for c in rest if not c.isspace()]
    if len(chars) % 2:
        logger.warning("dangling dependency entry %r ignored", chars[-1])
    for src, dest in zip(chars[0::2], chars[1::2]):
        weight = ord(src.lower()) - ord(dest.lower())
        if not graph.add_edge(src, dest, weight):
            logger.warning("dependency %s -> %s ignored", src, dest)

    return count


def load_data(file_name: str, graph: DependencyGraph) -> int:
    """Read instruction data from *file_name* into *graph*."""
    with open(file_name, "r") as f:
        return parse_instruction_data(f.read(), graph)

# ─────────────────────────────────────────────────────────────────────────────
# Cycle-count reports
# ─────────────────────────────────────────────────────────────────────────────

def stalls_required(graph: DependencyGraph) -> int:
    """
    Number of stalls the program needs.  With reads in Execute and writes
    visible only after Write-Back, only an instruction that depends on the
    one immediately before it has to wait.
    """
    return sum(1 for node in graph
               if graph.has_edge_from(node.node_id,
                                      previous_node_id(node.node_id)))


def sequential_cycles(graph: DependencyGraph) -> int:
    """N instructions run one after another: N * 4 cycles."""
    return graph.node_count() * BASE_CYCLES_PER_INSTRUCTION


def overlapped_cycles(graph: DependencyGraph) -> int:
    """
    Fully overlapped, no stalls: the first instruction takes 4 cycles and
    one more completes every cycle after that, so N + 3.
    """
    return graph.node_count() + BASE_CYCLES_PER_INSTRUCTION - 1


def partial_overlapped_cycles(graph: DependencyGraph) -> int:
    """
    Overlapped with one extra cycle per stall: N + 3 + M.

    At worst every instruction after the first stalls, giving 2N + 2.
    """
    return overlapped_cycles(graph) + stalls_required(graph)

# ─────────────────────────────────────────────────────────────────────────────
# Driver
# ─────────────────────────────────────────────────────────────────────────────

def feed_pipeline(sim: PipelineSim, graph: DependencyGraph) -> int:
    """Queue every graph node, in program order, flagging hazards."""
    queued = 0
    for node in graph:
        dependent = graph.has_edge_from(node.node_id,
                                        previous_node_id(node.node_id))
        queued = sim.insert_instruction(InstructionData(node.node_id,
                                                        data_dependent=dependent))
    return queued


def format_cycle(cycle: int, snapshot: List[str]) -> str:
    return f"  {cycle:3d}:  " + " ".join(snapshot)


def execute_pipeline_simulation(sim: PipelineSim, graph: DependencyGraph,
                                max_cycles: int = 200) -> List[List[str]]:
    """Run the program in *graph* through *sim* and print the overlapped trace."""
    feed_pipeline(sim, graph)

    print("Total time for sequential (non overlapped) execution: "
          f"{sequential_cycles(graph)} cycles")
    print("-" * 66)
    print("Overlapped execution:")

    trace = sim.run(max_cycles=max_cycles)
    for cycle, snapshot in enumerate(trace, start=1):
        print(format_cycle(cycle, snapshot))

    print("-" * 66)
    print("Total time for ideal (no stalls) overlapped execution: "
          f"{overlapped_cycles(graph)} cycles")
    print(f"Stalls required:       {stalls_required(graph)}")
    print("Total time for pipelined (overlapped) execution: "
          f"{partial_overlapped_cycles(graph)} cycles")

    if sim.stall_count != stalls_required(graph):
        logger.warning("simulated %d stalls, expected %d",
                       sim.stall_count, stalls_required(graph))
    return trace

# ─────────────────────────────────────────────────────────────────────────────
# Demo program
# ─────────────────────────────────────────────────────────────────────────────

def demo_program() -> str:
    """
    The textbook example: six instructions where b needs a's result and
    e needs d's.  Sequential 24 cycles, ideal 9, with stalls 11.
    """
    return "a b c d e f\nb a\ne d\n"

# ─────────────────────────────────────────────────────────────────────────────
# Main
# ─────────────────────────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Four-stage pipeline hazard simulator"
    )
    parser.add_argument("--file", "-f", type=str, default=None,
                        help="Path to an instruction data file")
    parser.add_argument("--cycles", "-n", type=int, default=200,
                        help="Maximum simulation cycles (default 200)")
    parser.add_argument("--capacity", "-c", type=int, default=MAX_INSTRUCTIONS,
                        help=f"Dependency graph capacity (default {MAX_INSTRUCTIONS})")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Print state every cycle")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    graph = DependencyGraph(args.capacity)
    if args.file:
        try:
            count = load_data(args.file, graph)
        except OSError as e:
            print(f"Error opening data file: {args.file} ({e.strerror})",
                  file=sys.stderr)
            return 1
        print(f"Loaded {count} instructions from {args.file}\n")
    else:
        count = parse_instruction_data(demo_program(), graph)
        print(f"Running built-in demo program ({count} instructions)\n")

    sim = PipelineSim(verbose=args.verbose)
    execute_pipeline_simulation(sim, graph, max_cycles=args.cycles)

    if args.verbose:
        sim.dump_stats()
    return 0


if __name__ == "__main__":
    sys.exit(main())
