"""Register allocation and x86-64 AVX assembly generation for memoized programs."""