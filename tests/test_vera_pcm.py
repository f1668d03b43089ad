from x16periph.vera_pcm import FIFO_SIZE, Pcm


def test_reset_state():
    pcm = Pcm()
    assert pcm.read_ctrl() == 0x40
    assert pcm.read_rate() == 0
    assert pcm.is_fifo_almost_empty() is True


def test_rate_register():
    pcm = Pcm()
    pcm.write_rate(0x80)
    assert pcm.read_rate() == 0x80
    pcm.write_rate(0xFF)
    assert pcm.read_rate() == 1


def test_fifo_full_flag():
    pcm = Pcm()
    for _ in range(FIFO_SIZE - 1):
        pcm.write_fifo(0x11)
    assert pcm.read_ctrl() & 0x80 == 0x80
    pcm.write_fifo(0x22)
    assert pcm.read_ctrl() & 0xC0 == 0x80


def test_almost_empty_threshold():
    pcm = Pcm()
    for _ in range(1023):
        pcm.write_fifo(0)
    assert pcm.is_fifo_almost_empty() is True
    pcm.write_fifo(0)
    assert pcm.is_fifo_almost_empty() is False


def test_ctrl_reset_bit_empties_fifo():
    pcm = Pcm()
    pcm.write_fifo(1)
    pcm.write_ctrl(0x80 | 0x0F)
    assert pcm.read_ctrl() == 0x40 | 0x0F


def test_zero_rate_renders_silence_and_keeps_fifo():
    pcm = Pcm()
    pcm.write_ctrl(0x0F)
    pcm.write_fifo(0x40)
    assert pcm.render(4) == [0] * 8
    assert pcm.read_ctrl() & 0x40 == 0


def test_mono_8bit_full_volume():
    pcm = Pcm()
    pcm.write_ctrl(0x0F)
    pcm.write_rate(128)
    pcm.write_fifo(0x40)
    samples = pcm.render(1)
    assert samples == [0x40 << 8, 0x40 << 8]
    assert pcm.read_ctrl() & 0x40 == 0x40


def test_stereo_8bit_negative():
    pcm = Pcm()
    pcm.write_ctrl(0x1F)
    pcm.write_rate(128)
    pcm.write_fifo(0x80)
    pcm.write_fifo(0x10)
    assert pcm.render(1) == [-32768, 0x10 << 8]


def test_mono_16bit():
    pcm = Pcm()
    pcm.write_ctrl(0x2F)
    pcm.write_rate(128)
    pcm.write_fifo(0x34)
    pcm.write_fifo(0x12)
    assert pcm.render(1) == [0x1234, 0x1234]


def test_volume_zero_is_silent():
    pcm = Pcm()
    pcm.write_ctrl(0x20)
    pcm.write_rate(128)
    pcm.write_fifo(0x34)
    pcm.write_fifo(0x12)
    assert pcm.render(1) == [0, 0]


def test_volume_scaling_truncates_toward_zero():
    pcm = Pcm()
    pcm.write_ctrl(0x2E)
    pcm.write_rate(128)
    pcm.write_fifo(0xFF)
    pcm.write_fifo(0xFF)
    assert pcm.render(1) == [0, 0]


def test_incomplete_frame_is_dropped():
    pcm = Pcm()
    pcm.write_ctrl(0x3F)
    pcm.write_rate(128)
    for value in (1, 2, 3):
        pcm.write_fifo(value)
    assert pcm.render(1) == [0, 0]
    assert pcm.read_ctrl() & 0x40 == 0x40


def test_loop_replays_fifo():
    pcm = Pcm()
    pcm.write_fifo(0x10)
    pcm.write_fifo(0x20)
    pcm.write_ctrl(0xCF)
    pcm.write_rate(128)
    samples = pcm.render(4)
    left = samples[0::2]
    assert left == [0x10 << 8, 0x20 << 8, 0x10 << 8, 0x20 << 8]
    assert samples[0::2] == samples[1::2]


def test_empty_fifo_outputs_zero_after_data():
    pcm = Pcm()
    pcm.write_ctrl(0x0F)
    pcm.write_rate(128)
    pcm.write_fifo(0x40)
    samples = pcm.render(2)
    assert samples[2:] == [0, 0]