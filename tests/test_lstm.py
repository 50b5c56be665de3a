import numpy as np
import pytest

from parakeet.lstm import LSTM, LSTMCell


def _zero_cell(input_size=3, hidden_size=4):
    cell = LSTMCell(input_size, hidden_size, rng=0)
    cell.input_weight[:] = 0
    cell.input_bias[:] = 0
    cell.hidden_weight[:] = 0
    return cell


def test_cell_with_zero_weights_halves_cell_state():
    cell = _zero_cell()
    h = np.zeros((1, 4), dtype=np.float32)
    c = np.ones((1, 4), dtype=np.float32)
    h_new, c_new = cell(np.ones((1, 3)), (h, c))
    np.testing.assert_allclose(c_new, 0.5)
    np.testing.assert_allclose(h_new, 0.5 * np.tanh(c_new), rtol=1e-6)


def test_saturated_forget_gate_preserves_cell_state():
    cell = _zero_cell(2, 3)
    cell.input_bias[0:3] = -50.0  # input gate closed
    cell.input_bias[3:6] = 50.0  # forget gate open
    c = np.array([[0.3, -0.7, 1.2]], dtype=np.float32)
    _, c_new = cell.forward(np.ones((1, 2)), (np.zeros((1, 3)), c))
    np.testing.assert_allclose(c_new, c, atol=1e-6)


def test_cell_rejects_wrong_input_width():
    cell = LSTMCell(3, 4, rng=1)
    with pytest.raises(ValueError):
        cell(np.ones((1, 5)), (np.zeros((1, 4)), np.zeros((1, 4))))


def test_cell_sizes():
    cell = LSTMCell(6, 5, rng=2)
    assert cell.input_size == 6
    assert cell.hidden_size == 5
    assert cell.input_weight.shape == (20, 6)


def test_initial_states_are_zero():
    lstm = LSTM(3, 4, num_layers=2, rng=0)
    states = lstm.initial_states(batch=2)
    assert len(states) == 2
    for h, c in states:
        assert h.shape == (2, 4) and c.shape == (2, 4)
        assert not h.any() and not c.any()


def test_forward_matches_repeated_step():
    rng = np.random.default_rng(3)
    lstm = LSTM(3, 4, num_layers=2, rng=5)
    x = rng.standard_normal((2, 6, 3)).astype(np.float32)
    outputs, final = lstm.forward(x)

    states = lstm.initial_states(2)
    for t in range(6):
        out, states = lstm.step(x[:, t], states)
        np.testing.assert_allclose(outputs[:, t], out, rtol=1e-6)
    for (h1, c1), (h2, c2) in zip(final, states):
        np.testing.assert_allclose(h1, h2)
        np.testing.assert_allclose(c1, c2)


def test_forward_output_shape_and_last_state():
    rng = np.random.default_rng(4)
    lstm = LSTM(5, 7, num_layers=3, rng=9)
    x = rng.standard_normal((1, 4, 5))
    outputs, final = lstm.forward(x)
    assert outputs.shape == (1, 4, 7)
    assert len(final) == 3
    np.testing.assert_allclose(outputs[:, -1], final[-1][0])


def test_hidden_output_is_bounded():
    rng = np.random.default_rng(6)
    lstm = LSTM(4, 8, num_layers=2, rng=7)
    outputs, _ = lstm.forward(rng.standard_normal((3, 10, 4)) * 10)
    assert outputs.shape == (3, 10, 8)
    peak = float(np.max(np.abs(outputs)))
    assert peak < 1.0
    assert peak > 0.0


def test_forward_continues_from_given_states():
    rng = np.random.default_rng(8)
    lstm = LSTM(3, 4, rng=2)
    x = rng.standard_normal((1, 6, 3))
    full, _ = lstm.forward(x)
    first, mid = lstm.forward(x[:, :3])
    second, _ = lstm.forward(x[:, 3:], mid)
    np.testing.assert_allclose(np.concatenate([first, second], axis=1), full, rtol=1e-6)


def test_step_rejects_wrong_number_of_states():
    lstm = LSTM(3, 4, num_layers=2, rng=0)
    with pytest.raises(ValueError):
        lstm.step(np.zeros((1, 3)), lstm.initial_states(1)[:1])


def test_invalid_layer_count():
    with pytest.raises(ValueError):
        LSTM(3, 4, num_layers=0)