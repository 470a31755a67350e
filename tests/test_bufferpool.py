from emitter.bufferpool import BufferPool


def test_new_buffer_is_empty_and_size_is_kept():
    pool = BufferPool(1024)
    buf = pool.get()
    assert pool.buffer_size == 1024
    assert buf.getvalue() == b""


def test_put_resets_and_reuses_buffer():
    pool = BufferPool(1024)
    buf = pool.get()
    buf.write(b"x" * (1024 * 3))
    pool.put(buf)

    again = pool.get()
    assert again is buf
    assert again.getvalue() == b""
    assert again.tell() == 0


def test_distinct_buffers_when_pool_empty():
    pool = BufferPool(100)
    first = pool.get()
    second = pool.get()
    assert first is not second
    first.write(b"abc")
    assert second.getvalue() == b""