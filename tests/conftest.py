# Import native-extension modules up front so they are loaded once per
# process, before any test's patch.dict("sys.modules", ...) block can
# record a snapshot that omits them and then evict them on exit.
import numpy.fft  # noqa: F401
import scipy.signal  # noqa: F401
