"""
Binary serialization of policy records and policy table snapshots.

All numbers are little-endian. A record is a flat float32 block:
current_strategy_weight, then current_strategy, regret_sum, strategy_sum
and baseline, each num_actions long. A table snapshot is:

    header:   uint64 iteration, uint32 num_players
    player:   int32 player_index, uint32 num_records
    record:   key, regret_sum, strategy_sum

where key is a uint32 length followed by raw bytes and each array is a
uint32 length followed by float32 values. The current strategy is not
stored; it is recomputed by regret matching on load.
"""

import logging
import struct
from pathlib import Path
from typing import BinaryIO, Optional, Union

import numpy as np

from cfrkit.errors import SnapshotError
from .params import DiscountParams
from .strategy import NodePolicy, PolicyTable

logger = logging.getLogger(__name__)

FLOAT32 = np.dtype("<f4")

_HEADER = struct.Struct("<QI")
_PLAYER = struct.Struct("<iI")
_LENGTH = struct.Struct("<I")


def encode_record(policy: NodePolicy) -> bytes:
    """Serialize a policy into its fixed-size float32 block."""
    block = np.concatenate([
        np.array([policy.current_strategy_weight], dtype=FLOAT32),
        policy.current_strategy.astype(FLOAT32, copy=False),
        policy.regret_sum.astype(FLOAT32, copy=False),
        policy.strategy_sum.astype(FLOAT32, copy=False),
        policy.baseline.astype(FLOAT32, copy=False),
    ])
    return block.tobytes()


def decode_record(buf: bytes, num_actions: Optional[int] = None) -> NodePolicy:
    """
    Deserialize a policy from its float32 block.

    Args:
        buf: Encoded record
        num_actions: Number of actions, inferred from the length if omitted

    Raises:
        SnapshotError: If the length does not match a whole record
    """
    if len(buf) % FLOAT32.itemsize != 0:
        raise SnapshotError(f"record length {len(buf)} is not a multiple of 4")

    num_floats = len(buf) // FLOAT32.itemsize
    if num_actions is None:
        if num_floats < 5 or (num_floats - 1) % 4 != 0:
            raise SnapshotError(f"cannot infer action count from {num_floats} floats")
        num_actions = (num_floats - 1) // 4
    elif num_actions < 1:
        raise SnapshotError(f"record needs at least one action, got {num_actions}")
    elif num_floats != 1 + 4 * num_actions:
        raise SnapshotError(
            f"record has {num_floats} floats, expected {1 + 4 * num_actions} "
            f"for {num_actions} actions"
        )

    values = np.frombuffer(buf, dtype=FLOAT32).astype(np.float32)
    n = num_actions
    return NodePolicy(
        num_actions=n,
        current_strategy=values[1:1 + n].copy(),
        regret_sum=values[1 + n:1 + 2 * n].copy(),
        strategy_sum=values[1 + 2 * n:1 + 3 * n].copy(),
        baseline=values[1 + 3 * n:1 + 4 * n].copy(),
        current_strategy_weight=float(values[0]),
    )


def _write_bytes(fp: BinaryIO, data: bytes) -> None:
    fp.write(_LENGTH.pack(len(data)))
    fp.write(data)


def _write_array(fp: BinaryIO, values: np.ndarray) -> None:
    fp.write(_LENGTH.pack(len(values)))
    fp.write(values.astype(FLOAT32, copy=False).tobytes())


def _read_exact(fp: BinaryIO, n: int) -> bytes:
    data = fp.read(n)
    if len(data) != n:
        raise SnapshotError(f"unexpected end of snapshot: wanted {n} bytes, got {len(data)}")
    return data


def _read_struct(fp: BinaryIO, fmt: struct.Struct) -> tuple:
    return fmt.unpack(_read_exact(fp, fmt.size))


def _read_bytes(fp: BinaryIO) -> bytes:
    (n,) = _read_struct(fp, _LENGTH)
    return _read_exact(fp, n)


def _read_array(fp: BinaryIO) -> np.ndarray:
    (n,) = _read_struct(fp, _LENGTH)
    data = _read_exact(fp, n * FLOAT32.itemsize)
    return np.frombuffer(data, dtype=FLOAT32).astype(np.float32)


def dump_table(table: PolicyTable, fp: BinaryIO) -> None:
    """
    Write a snapshot of the policy table to a binary stream.

    Args:
        table: Policy table to save
        fp: Writable binary file object
    """
    players = table.players()
    fp.write(_HEADER.pack(table.iter, len(players)))
    for player in players:
        records = list(table.records(player))
        fp.write(_PLAYER.pack(player, len(records)))
        for _, key, policy in records:
            _write_bytes(fp, key)
            _write_array(fp, policy.regret_sum)
            _write_array(fp, policy.strategy_sum)


def load_table(fp: BinaryIO, params: Optional[DiscountParams] = None) -> PolicyTable:
    """
    Read a policy table snapshot from a binary stream.

    Args:
        fp: Readable binary file object
        params: Discounting scheme for the loaded table

    Raises:
        SnapshotError: If the snapshot is truncated or inconsistent
    """
    iteration, num_players = _read_struct(fp, _HEADER)
    table = PolicyTable(params, iteration=iteration)

    for _ in range(num_players):
        player, num_records = _read_struct(fp, _PLAYER)
        for _ in range(num_records):
            key = _read_bytes(fp)
            regret_sum = _read_array(fp)
            strategy_sum = _read_array(fp)
            if len(regret_sum) == 0 or len(regret_sum) != len(strategy_sum):
                raise SnapshotError(
                    f"record {key.hex()} has {len(regret_sum)} regrets "
                    f"and {len(strategy_sum)} strategy sums"
                )

            policy = NodePolicy(
                num_actions=len(regret_sum),
                regret_sum=regret_sum,
                strategy_sum=strategy_sum,
            )
            policy.regret_matching()
            table.put(player, key, policy)

    return table


def save_table(table: PolicyTable, path: Union[str, Path]) -> None:
    """Save a policy table snapshot to a file."""
    with open(path, "wb") as f:
        dump_table(table, f)
    logger.info("Saved %d infosets at iteration %d to %s", len(table), table.iter, path)


def load_table_file(path: Union[str, Path], params: Optional[DiscountParams] = None) -> PolicyTable:
    """Load a policy table snapshot from a file."""
    with open(path, "rb") as f:
        table = load_table(f, params)
    logger.info("Loaded %d infosets at iteration %d from %s", len(table), table.iter, path)
    return table
