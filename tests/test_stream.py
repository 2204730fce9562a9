import asyncio

from posecam.stream import BOUNDARY, FrameBuffer, mjpeg_part, mjpeg_stream


JPEG = b"\xff\xd8jpeg-body\xff\xd9"


def test_part_layout():
	part = mjpeg_part(JPEG)
	head, body = part.split(b"\r\n\r\n", 1)
	assert head.split(b"\r\n") == [
		f"--{BOUNDARY}".encode(),
		b"Content-Type: image/jpeg",
		f"Content-Length: {len(JPEG)}".encode(),
	]
	assert body == JPEG + b"\r\n"


def test_buffer_counts_publishes():
	buf = FrameBuffer()
	assert buf.get_latest() == (None, 0)
	buf.publish(JPEG, t=12.5)
	buf.publish(JPEG + b"x")
	jpeg, count = buf.get_latest()
	assert jpeg == JPEG + b"x"
	assert count == 2
	assert buf.get_latest_jpeg()[1] is not None


def test_stream_sends_each_new_frame_once():
	buf = FrameBuffer()

	async def scenario():
		gen = mjpeg_stream(buf, fps=1000.0, poll_s=0.001)
		buf.publish(b"one")
		first = await gen.__anext__()

		async def next_part():
			return await gen.__anext__()

		# nothing new yet; the generator keeps waiting
		pending = asyncio.get_running_loop().create_task(next_part())
		await asyncio.sleep(0.02)
		assert not pending.done()
		buf.publish(b"two")
		second = await asyncio.wait_for(pending, 1.0)
		await gen.aclose()
		return first, second

	first, second = asyncio.run(scenario())
	assert first.endswith(b"one\r\n")
	assert second.endswith(b"two\r\n")


def test_stream_sends_only_latest_when_frames_pile_up():
	buf = FrameBuffer()

	async def scenario():
		gen = mjpeg_stream(buf, fps=1000.0, poll_s=0.001)
		for data in (b"a", b"b", b"c"):
			buf.publish(data)
		part = await gen.__anext__()
		await gen.aclose()
		return part

	assert asyncio.run(scenario()).endswith(b"c\r\n")
