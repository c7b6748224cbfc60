"""
⚠️ DRAFT — requires crypto review before production use

Poseidon hash over the BN254 scalar field, compatible with circomlib.

Parameters (circomlib / reference Hades design):
    - S-box x^5
    - RF = 8 full rounds, split 4 before and 4 after the partial rounds
    - RP from circomlib's table, indexed by t = len(inputs) + 1
    - state = [0] + inputs, output state[0]

Round constants and the Cauchy MDS matrix are regenerated from the reference
Grain LFSR (field=1, sbox=0, n=254) rather than shipped as a table. The
generator's secure-MDS checks (algorithms 1-3 of the reference script) are not
re-run; the tables for t in 2..17 are pinned by the known-answer tests.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple

from ..config import (
    FIELD_PRIME,
    POSEIDON_ALPHA,
    POSEIDON_FULL_ROUNDS,
    POSEIDON_PARTIAL_ROUNDS,
)
from ..exceptions import ValidationError

_FIELD_BITS = FIELD_PRIME.bit_length()  # 254
MAX_INPUTS = len(POSEIDON_PARTIAL_ROUNDS)


@dataclass(frozen=True)
class PoseidonParameters:
    t: int
    full_rounds: int
    partial_rounds: int
    round_constants: Tuple[int, ...]
    mds: Tuple[Tuple[int, ...], ...]


# ============================================================================
# GRAIN LFSR
# ============================================================================


class _GrainLFSR:
    """80-bit self-shrinking Grain LFSR from the Poseidon reference scripts."""

    def __init__(self, t: int, full_rounds: int, partial_rounds: int):
        bits: List[int] = []
        for value, width in (
            (1, 2),  # prime field
            (0, 4),  # x^alpha S-box
            (_FIELD_BITS, 12),
            (t, 12),
            (full_rounds, 10),
            (partial_rounds, 10),
        ):
            bits.extend(int(b) for b in format(value, f"0{width}b"))
        bits.extend([1] * 30)
        self._state = deque(bits, maxlen=80)
        for _ in range(160):
            self._clock()

    def _clock(self) -> int:
        s = self._state
        new_bit = s[62] ^ s[51] ^ s[38] ^ s[23] ^ s[13] ^ s[0]
        s.append(new_bit)
        return new_bit

    def bits(self) -> Iterator[int]:
        while True:
            # emit the second bit of each pair whose first bit is 1
            if self._clock() == 1:
                yield self._clock()
            else:
                self._clock()

    def random_int(self, num_bits: int) -> int:
        value = 0
        stream = self.bits()
        for _ in range(num_bits):
            value = (value << 1) | next(stream)
        return value


def _generate_round_constants(lfsr: _GrainLFSR, count: int) -> List[int]:
    constants = []
    while len(constants) < count:
        candidate = lfsr.random_int(_FIELD_BITS)
        if candidate < FIELD_PRIME:
            constants.append(candidate)
    return constants


def _generate_mds(lfsr: _GrainLFSR, t: int) -> List[List[int]]:
    while True:
        values = [lfsr.random_int(_FIELD_BITS) % FIELD_PRIME for _ in range(2 * t)]
        while len(set(values)) != len(values):
            values = [lfsr.random_int(_FIELD_BITS) % FIELD_PRIME for _ in range(2 * t)]
        xs, ys = values[:t], values[t:]
        if any((x + y) % FIELD_PRIME == 0 for x in xs for y in ys):
            continue
        return [[pow(x + y, FIELD_PRIME - 2, FIELD_PRIME) for y in ys] for x in xs]


_params_cache: Dict[int, PoseidonParameters] = {}
_params_lock = threading.Lock()


def get_parameters(t: int) -> PoseidonParameters:
    """Return (and cache) the parameters for state width t."""
    if not 2 <= t <= MAX_INPUTS + 1:
        raise ValidationError(f"Poseidon width t={t} outside 2..{MAX_INPUTS + 1}")

    params = _params_cache.get(t)
    if params is None:
        with _params_lock:
            params = _params_cache.get(t)
            if params is None:
                partial = POSEIDON_PARTIAL_ROUNDS[t - 2]
                lfsr = _GrainLFSR(t, POSEIDON_FULL_ROUNDS, partial)
                constants = _generate_round_constants(
                    lfsr, (POSEIDON_FULL_ROUNDS + partial) * t
                )
                mds = _generate_mds(lfsr, t)
                params = PoseidonParameters(
                    t=t,
                    full_rounds=POSEIDON_FULL_ROUNDS,
                    partial_rounds=partial,
                    round_constants=tuple(constants),
                    mds=tuple(tuple(row) for row in mds),
                )
                _params_cache[t] = params
    return params


# ============================================================================
# PERMUTATION
# ============================================================================


def _sbox(x: int) -> int:
    return pow(x, POSEIDON_ALPHA, FIELD_PRIME)


def poseidon(inputs: Sequence[int]) -> int:
    """
    Hash 1..16 field elements.

    Raises:
        ValidationError: If the arity is unsupported or an input is not in [0, p).
    """
    if not 1 <= len(inputs) <= MAX_INPUTS:
        raise ValidationError(f"Poseidon takes 1..{MAX_INPUTS} inputs, got {len(inputs)}")
    for value in inputs:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("Poseidon inputs must be integers")
        if not 0 <= value < FIELD_PRIME:
            raise ValidationError("Poseidon input outside the scalar field")

    t = len(inputs) + 1
    params = get_parameters(t)
    half_full = params.full_rounds // 2
    constants = params.round_constants
    mds = params.mds

    state = [0] + list(inputs)
    for r in range(params.full_rounds + params.partial_rounds):
        offset = r * t
        state = [(state[i] + constants[offset + i]) % FIELD_PRIME for i in range(t)]
        if r < half_full or r >= half_full + params.partial_rounds:
            state = [_sbox(x) for x in state]
        else:
            state[0] = _sbox(state[0])
        state = [
            sum(row[j] * state[j] for j in range(t)) % FIELD_PRIME for row in mds
        ]
    return state[0]
