"""Stacked LSTM used by the transducer prediction network."""

from __future__ import annotations

from typing import Sequence

import numpy as np

LSTMState = tuple[np.ndarray, np.ndarray]


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 0.5 * (1.0 + np.tanh(0.5 * x))


class LSTMCell:
    """One LSTM layer.

    Gates are laid out as (input, forget, cell, output) along the last axis of
    the projections. The input projection carries a bias, the hidden one does not.
    """

    def __init__(self, input_size: int, hidden_size: int, *, rng=None) -> None:
        if input_size < 1 or hidden_size < 1:
            raise ValueError("input_size and hidden_size must be positive")
        gen = np.random.default_rng(rng)
        bound = 1.0 / np.sqrt(hidden_size)
        self.input_weight = gen.uniform(-bound, bound, (4 * hidden_size, input_size)).astype(
            np.float32
        )
        self.input_bias = gen.uniform(-bound, bound, 4 * hidden_size).astype(np.float32)
        self.hidden_weight = gen.uniform(-bound, bound, (4 * hidden_size, hidden_size)).astype(
            np.float32
        )

    @property
    def input_size(self) -> int:
        return self.input_weight.shape[1]

    @property
    def hidden_size(self) -> int:
        return self.hidden_weight.shape[1]

    def forward(self, x, state: LSTMState) -> LSTMState:
        """Advance one time step; ``x`` is (batch, input_size). Returns the new (h, c)."""
        h, c = (np.asarray(s, dtype=np.float32) for s in state)
        x = np.asarray(x, dtype=np.float32)
        if x.shape[-1] != self.input_size:
            raise ValueError(f"expected {self.input_size} input features, got {x.shape[-1]}")
        gates = x @ self.input_weight.T + self.input_bias + h @ self.hidden_weight.T
        i_gate, f_gate, g_gate, o_gate = np.split(gates, 4, axis=-1)
        c_new = _sigmoid(f_gate) * c + _sigmoid(i_gate) * np.tanh(g_gate)
        h_new = _sigmoid(o_gate) * np.tanh(c_new)
        return h_new.astype(np.float32), c_new.astype(np.float32)

    def __call__(self, x, state: LSTMState) -> LSTMState:
        return self.forward(x, state)


class LSTM:
    """A stack of LSTM cells; each layer feeds its hidden state to the next."""

    def __init__(self, input_size: int, hidden_size: int, num_layers: int = 1, *, rng=None) -> None:
        if num_layers < 1:
            raise ValueError("num_layers must be at least 1")
        gen = np.random.default_rng(rng)
        self.cells = [
            LSTMCell(input_size if layer == 0 else hidden_size, hidden_size, rng=gen)
            for layer in range(num_layers)
        ]

    @property
    def num_layers(self) -> int:
        return len(self.cells)

    @property
    def hidden_size(self) -> int:
        return self.cells[-1].hidden_size

    def initial_states(self, batch: int = 1) -> list[LSTMState]:
        """Zero (h, c) pairs for every layer."""
        return [
            (
                np.zeros((batch, cell.hidden_size), dtype=np.float32),
                np.zeros((batch, cell.hidden_size), dtype=np.float32),
            )
            for cell in self.cells
        ]

    def step(self, x, states: Sequence[LSTMState]) -> tuple[np.ndarray, list[LSTMState]]:
        """Run one time step through all layers; returns (output, new_states)."""
        states = list(states)
        if len(states) != self.num_layers:
            raise ValueError(f"expected {self.num_layers} layer states, got {len(states)}")
        out = np.asarray(x, dtype=np.float32)
        new_states = []
        for cell, state in zip(self.cells, states):
            state = cell(out, state)
            new_states.append(state)
            out = state[0]
        return out, new_states

    def forward(
        self, x, states: Sequence[LSTMState] | None = None
    ) -> tuple[np.ndarray, list[LSTMState]]:
        """Run a (batch, seq, features) sequence; returns ((batch, seq, hidden), final states)."""
        x = np.asarray(x, dtype=np.float32)
        if x.ndim != 3:
            raise ValueError("input must have shape (batch, seq, features)")
        current = self.initial_states(x.shape[0]) if states is None else list(states)
        outputs = []
        for t in range(x.shape[1]):
            out, current = self.step(x[:, t], current)
            outputs.append(out)
        if not outputs:
            return np.zeros((x.shape[0], 0, self.hidden_size), dtype=np.float32), list(current)
        return np.stack(outputs, axis=1), current